from __future__ import annotations

import contextlib
import logging
import socket

from k3driver.constants import CONTROL_PORT, DATA_PORT
from k3driver.errors import ParseError
from k3driver.protocol import (
    CtrlAck,
    CtrlRequest,
    DataRequest,
    DataSnapshot,
    InitAck,
    InitRequest,
    Request,
    Response,
    decode_response,
    encode_request,
)


class RobotClient:
    """
    Synchronous UDP client for the K3DRV protocol.

    The driver answers malformed or misrouted requests with silence, so every
    call returns None (or False) when no valid reply arrives in time.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        control_port: int = CONTROL_PORT,
        data_port: int = DATA_PORT,
        timeout: float = 0.5,
        retries: int = 0,
    ) -> None:
        self.host = host
        self.control_port = control_port
        self.data_port = data_port
        self.timeout = timeout
        self.retries = retries
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.settimeout(timeout)

    def __enter__(self) -> "RobotClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        with contextlib.suppress(OSError):
            self._sock.close()

    def send_raw(self, port: int, payload: bytes) -> bytes | None:
        """Send one datagram and return the raw reply, or None on timeout."""
        for attempt in range(self.retries + 1):
            self._sock.sendto(payload, (self.host, port))
            try:
                data, _ = self._sock.recvfrom(4096)
                return data
            except TimeoutError:
                logging.debug(
                    "No reply from %s:%d (attempt %d/%d)", self.host, port, attempt + 1, self.retries + 1
                )
        return None

    def request(self, port: int, request: Request) -> Response | None:
        data = self.send_raw(port, encode_request(request))
        if data is None:
            return None
        try:
            return decode_response(data)
        except ParseError as e:
            logging.warning("Malformed reply from %s:%d: %s", self.host, port, e)
            return None

    def init(self) -> bool:
        """Zero the wheel position counters."""
        return isinstance(self.request(self.control_port, InitRequest()), InitAck)

    def set_speeds(self, right: int, left: int) -> bool:
        reply = self.request(self.control_port, CtrlRequest(right_speed=right, left_speed=left))
        return isinstance(reply, CtrlAck)

    def stop(self) -> bool:
        return self.set_speeds(0, 0)

    def read_data(self) -> DataSnapshot | None:
        reply = self.request(self.data_port, DataRequest())
        return reply if isinstance(reply, DataSnapshot) else None
