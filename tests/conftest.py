from __future__ import annotations

import os
import subprocess
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from k3driver.config import SessionConfig
from tests.utils.fakes import RecordingGateway
from tests.utils.udp import free_udp_port

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from k3driver.services.sessions import SessionLoop


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def start_session(gateway: RecordingGateway) -> Iterator[Callable[..., SessionLoop]]:
    """
    Factory that binds a session loop to an ephemeral loopback port and starts it.
    Every session started through the factory is stopped at teardown.
    """
    started: list[SessionLoop] = []

    def _start(
        session_cls: type[SessionLoop],
        timeout: float = 0.0,
        strict_numbers: bool = False,
        gw=None,
    ) -> SessionLoop:
        config = SessionConfig(port=0, control_timeout=timeout, verbosity=3, host="127.0.0.1")
        session = session_cls(config, gw or gateway, strict_numbers=strict_numbers)
        session.start()
        started.append(session)
        return session

    yield _start
    for session in started:
        session.stop()


@pytest.fixture
def driver_process() -> Iterator[tuple[subprocess.Popen, int, int]]:
    """
    Spawn `python -m k3driver` on two free loopback ports with a short
    control timeout. Yields (proc, control_port, data_port); ensures cleanup.
    """
    repo_root = Path(__file__).resolve().parent.parent
    control_port = free_udp_port()
    data_port = free_udp_port()
    while data_port == control_port:
        data_port = free_udp_port()

    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(repo_root), env.get("PYTHONPATH")]))
    env.pop("K3DRV_LOG_LEVEL", None)
    proc = subprocess.Popen(
        [
            sys.executable,
            "-m",
            "k3driver",
            "--host",
            "127.0.0.1",
            "-p",
            str(control_port),
            "-P",
            str(data_port),
            "-t",
            "0.3",
            "-v",
            "2",
        ],
        cwd=str(repo_root),
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        env=env,
        text=True,
    )

    # Give it a moment to bind sockets
    time.sleep(1.0)

    try:
        yield proc, control_port, data_port
    finally:
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
