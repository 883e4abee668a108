from __future__ import annotations

import contextlib
import logging
import signal
import threading

from k3driver.config import ServiceConfig
from k3driver.errors import TransportError
from k3driver.services.gateway import RobotGateway
from k3driver.services.sessions import ControlSession, DataSession, SessionLoop


class ServiceSupervisor:
    """
    Owns the control and data session loops for the lifetime of the process.

    - Binds both sockets before starting either thread, so a bind failure
      leaves nothing running.
    - Starts each loop exactly once and never restarts it.
    - Treats the exit of either loop as fatal: wait() returns and the caller
      shuts the whole service down.
    - Issues a best-effort stop to the gateway on shutdown.
    """

    def __init__(self, config: ServiceConfig, gateway: RobotGateway) -> None:
        self.config = config
        self.gateway = gateway
        self.control = ControlSession(config.control, gateway, strict_numbers=config.strict_numbers)
        self.data = DataSession(config.data, gateway, strict_numbers=config.strict_numbers)
        self._wake = threading.Event()
        self._exited: list[SessionLoop] = []
        self._started = False
        self._closed = False

    @property
    def sessions(self) -> tuple[SessionLoop, ...]:
        return (self.control, self.data)

    @property
    def failure(self) -> Exception | None:
        for session in self.sessions:
            if session.failure is not None:
                return session.failure
        return None

    def is_running(self) -> bool:
        return self._started and not self._closed and all(s.is_alive() for s in self.sessions)

    def start(self) -> None:
        """Bind and start both loops. Raises TransportError if a port cannot be bound."""
        if self._started:
            return
        try:
            for session in self.sessions:
                session.bind()
        except TransportError:
            for session in self.sessions:
                session.close()
            raise

        for session in self.sessions:
            session.start(on_exit=self._on_session_exit)
        self._started = True
        logging.info(
            "k3driver listening: control=%s:%d (timeout %gs) data=%s:%d",
            *self.control.address,
            self.config.control.control_timeout,
            *self.data.address,
        )

    def _on_session_exit(self, session: SessionLoop) -> None:
        if not session.stopping:
            logging.critical(
                "%s session exited unexpectedly: %s",
                session.name.capitalize(),
                session.failure or "no error reported",
            )
        self._exited.append(session)
        self._wake.set()

    def request_shutdown(self) -> None:
        self._wake.set()

    def wait(self, timeout: float | None = None) -> bool:
        """
        Block until shutdown is requested or a loop exits.

        Returns:
            True if a loop died on its own (fatal), False otherwise.
        """
        if timeout is None:
            # Short waits keep the main thread responsive to signals
            while not self._wake.wait(0.5):
                pass
        else:
            self._wake.wait(timeout)
        return self._loop_died()

    def _loop_died(self) -> bool:
        return any(not s.stopping for s in self._exited)

    def shutdown(self) -> None:
        """Stop both loops and the wheels. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for session in self.sessions:
            session.stop()
        try:
            self.gateway.stop()
            logging.info("Final stop command sent to the robot")
        except Exception as e:
            logging.error("Final stop command failed: %s", e)
        self._wake.set()

    def _on_signal(self, signum, _frame) -> None:
        logging.info("Received %s, shutting down", signal.Signals(signum).name)
        self.request_shutdown()

    def run(self) -> int:
        """Start, wait for a signal or a fatal loop exit, then shut down. Returns the exit status."""
        self.start()
        previous = {}
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(ValueError):  # not in main thread
                previous[sig] = signal.signal(sig, self._on_signal)
        try:
            failed = self.wait()
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            self.shutdown()
        return 1 if failed else 0
