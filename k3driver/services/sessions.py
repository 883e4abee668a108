"""
UDP session loops: one long-lived thread per port.

ControlSession serves INIT and CTRL and owns the failsafe stop; DataSession
serves DATA. Each loop receives, decodes, dispatches and replies strictly in
sequence. Requests that fail to decode, or that belong to the other channel,
are logged and answered with silence.
"""
from __future__ import annotations

import contextlib
import logging
import socket
import threading
from typing import Callable

from k3driver.common.logging_config import verbosity_to_level
from k3driver.config import SessionConfig
from k3driver.constants import MAX_DATAGRAM
from k3driver.errors import ParseError, TransportError, UnknownRequestType
from k3driver.protocol import (
    CtrlAck,
    CtrlRequest,
    DataRequest,
    DataSnapshot,
    InitAck,
    InitRequest,
    Request,
    Response,
    decode_request,
    encode_response,
    request_type_name,
)
from k3driver.services.gateway import RobotGateway

Address = tuple[str, int]


class SessionLoop:
    """Receive/dispatch/reply cycle bound to one UDP port for the process lifetime."""

    name = "session"
    accepts: tuple[type, ...] = ()

    def __init__(
        self,
        config: SessionConfig,
        gateway: RobotGateway,
        strict_numbers: bool = False,
    ) -> None:
        self.config = config
        self.gateway = gateway
        self.strict_numbers = strict_numbers
        self.log = logging.getLogger(f"k3driver.session.{self.name}")
        if config.log_level is not None:
            self.log.setLevel(config.log_level)
        else:
            self.log.setLevel(verbosity_to_level(config.verbosity))

        self.last_peer: Address | None = None
        self.failure: Exception | None = None
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()

    # ---- lifecycle ----

    @property
    def address(self) -> Address:
        if self._sock is None:
            raise RuntimeError(f"{self.name} session is not bound")
        return self._sock.getsockname()[:2]

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def bind(self) -> None:
        if self._sock is not None:
            return
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind(self.config.address)
        except OSError as e:
            sock.close()
            raise TransportError(
                f"bind() failed for {self.name} session on {self.config.host}:{self.config.port}: {e}"
            ) from e
        self._sock = sock
        self.log.info("%s session bound to %s:%d", self.name.capitalize(), *self.address)

    def start(self, on_exit: Callable[[SessionLoop], None] | None = None) -> None:
        """Bind if needed and run the loop in its own thread. A loop starts once."""
        if self._thread is not None:
            raise RuntimeError(f"{self.name} session already started")
        self.bind()
        self._thread = threading.Thread(
            target=self._run, args=(on_exit,), name=f"k3drv-{self.name}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        """Ask the loop to exit, wake it from recvfrom(), and close the socket."""
        self._stop.set()
        if self._sock is not None and self.is_alive():
            self._wake()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                self.log.warning("%s session did not exit within %.1fs", self.name, timeout)
        self.close()

    def close(self) -> None:
        if self._sock is not None:
            with contextlib.suppress(OSError):
                self._sock.close()
            self._sock = None

    def _wake(self) -> None:
        host, port = self.address
        if host in ("0.0.0.0", ""):
            host = "127.0.0.1"
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
                s.sendto(b"", (host, port))
        except OSError as e:
            self.log.debug("Wake-up datagram to %s:%d failed: %s", host, port, e)

    def _run(self, on_exit: Callable[[SessionLoop], None] | None) -> None:
        try:
            self.serve_forever()
        except Exception as e:
            self.failure = e
            self.log.error("%s session terminated: %s", self.name.capitalize(), e)
        finally:
            if on_exit is not None:
                on_exit(self)

    # ---- receive / dispatch / reply ----

    def serve_forever(self) -> None:
        while not self._stop.is_set():
            received = self.receive()
            if received is None or self._stop.is_set():
                continue
            data, peer = received
            self.handle_datagram(data, peer)

    def receive(self) -> tuple[bytes, Address] | None:
        """Block for one datagram. Socket timeouts propagate as TimeoutError."""
        assert self._sock is not None
        try:
            return self._sock.recvfrom(MAX_DATAGRAM)
        except TimeoutError:
            raise
        except OSError as e:
            if self._stop.is_set():
                return None
            raise TransportError(f"recvfrom() failed on {self.name} session: {e}") from e

    def handle_datagram(self, data: bytes, peer: Address) -> bytes | None:
        """Decode, dispatch and reply to one datagram. Returns the reply sent, if any."""
        self.last_peer = peer
        self.log.debug("Handling %s request from client %s", self.name, peer[0])
        self.log.trace("Parsing received datagram: %r", data)  # type: ignore[attr-defined]
        try:
            request = decode_request(data, strict=self.strict_numbers)
            if not isinstance(request, self.accepts):
                raise UnknownRequestType(request_type_name(request), channel=self.name)
        except ParseError as e:
            self.log.warning("Parsing failed (%s from %s): %s", type(e).__name__, peer[0], e)
            return None

        reply = encode_response(self.dispatch(request))
        self.send(reply, peer)
        return reply

    def dispatch(self, request: Request) -> Response:
        raise NotImplementedError

    def send(self, reply: bytes, peer: Address) -> None:
        assert self._sock is not None
        self.log.debug("Sending reply: %s", reply.decode("ascii"))
        try:
            sent = self._sock.sendto(reply, peer)
        except OSError as e:
            raise TransportError(f"sendto() failed on {self.name} session: {e}") from e
        if sent != len(reply):
            raise TransportError("sendto() sent a different number of bytes than expected")


class ControlSession(SessionLoop):
    """
    Motion commands (INIT, CTRL) with a silence failsafe.

    While armed, recvfrom() waits at most ``control_timeout`` seconds. On
    expiry the wheels are stopped once and the wait becomes unbounded until the
    next datagram re-arms the deadline. A timeout of 0 disables the failsafe.
    """

    name = "control"
    accepts = (InitRequest, CtrlRequest)

    def __init__(
        self,
        config: SessionConfig,
        gateway: RobotGateway,
        strict_numbers: bool = False,
    ) -> None:
        super().__init__(config, gateway, strict_numbers=strict_numbers)
        self.failsafe_armed = False
        self.failsafe_stops = 0

    def serve_forever(self) -> None:
        self._arm()
        super().serve_forever()

    def _arm(self) -> None:
        assert self._sock is not None
        timeout = self.config.control_timeout
        if timeout > 0:
            self._sock.settimeout(timeout)
            self.failsafe_armed = True
        else:
            self._sock.settimeout(None)
            self.failsafe_armed = False

    def receive(self) -> tuple[bytes, Address] | None:
        if self.failsafe_armed:
            self.log.debug(
                "Waiting to receive a control request on port %d (timeout = %gs).",
                self.config.port,
                self.config.control_timeout,
            )
        else:
            self.log.debug("Waiting to receive a control request on port %d.", self.config.port)
        try:
            received = super().receive()
        except TimeoutError:
            self.on_timeout()
            return None
        if received is not None and not self.failsafe_armed:
            self._arm()
        return received

    def on_timeout(self) -> None:
        self.log.warning(
            "No control request for %gs: stopping motors", self.config.control_timeout
        )
        self.gateway.set_wheel_speeds(0, 0)
        self.failsafe_stops += 1
        assert self._sock is not None
        self._sock.settimeout(None)
        self.failsafe_armed = False

    def dispatch(self, request: Request) -> Response:
        if isinstance(request, InitRequest):
            self.gateway.zero_position_counters()
            self.log.info("Wheel position counters reset")
            return InitAck()
        if isinstance(request, CtrlRequest):
            self.log.info(
                "Sending motor control (right,left); (%d,%d)",
                request.right_speed,
                request.left_speed,
            )
            self.gateway.set_wheel_speeds(request.right_speed, request.left_speed)
            return CtrlAck()
        raise TypeError(f"Unexpected request on control session: {request!r}")


class DataSession(SessionLoop):
    """Telemetry snapshots (DATA). Blocks without deadline."""

    name = "data"
    accepts = (DataRequest,)

    def receive(self) -> tuple[bytes, Address] | None:
        self.log.debug("Waiting to receive a data request on port %d.", self.config.port)
        return super().receive()

    def dispatch(self, request: Request) -> Response:
        if not isinstance(request, DataRequest):
            raise TypeError(f"Unexpected request on data session: {request!r}")
        ir = self.gateway.read_infrared()
        right, left = self.gateway.read_odometry_delta()
        return DataSnapshot(ir=ir, encoder_right=right, encoder_left=left)
