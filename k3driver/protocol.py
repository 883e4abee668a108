"""
K3DRV wire protocol: comma-delimited ASCII, one message per UDP datagram.

    $K3DRV,REQ,INIT                  -> $K3DRV,RES,INIT
    $K3DRV,REQ,CTRL,<R>,<L>          -> $K3DRV,CTRL,RES
    $K3DRV,REQ,DATA                  -> $K3DRV,RES,DATA,IR,11,<ir0..ir10>,ENC,2,<encR>,<encL>

Decoding never touches the robot; malformed datagrams raise a ParseError.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Union

from k3driver.errors import (
    BadPreamble,
    InvalidArgument,
    MissingArgument,
    MissingType,
    ParseError,
    UnknownRequestType,
)

PREAMBLE = "$K3DRV"
REQ = "REQ"
RES = "RES"
DELIMITER = ","
IR_COUNT = 11
ENC_COUNT = 2

# Leading-integer prefix accepted by C atoi()
_ATOI_RE = re.compile(r"^\s*([+-]?\d+)")
_INT_RE = re.compile(r"^[+-]?\d+$")


@dataclass(frozen=True)
class InitRequest:
    pass


@dataclass(frozen=True)
class CtrlRequest:
    right_speed: int
    left_speed: int


@dataclass(frozen=True)
class DataRequest:
    pass


@dataclass(frozen=True)
class InitAck:
    pass


@dataclass(frozen=True)
class CtrlAck:
    pass


@dataclass(frozen=True)
class DataSnapshot:
    ir: tuple[int, ...]
    encoder_right: int
    encoder_left: int

    def __post_init__(self) -> None:
        # Accept any sequence, store an immutable tuple
        object.__setattr__(self, "ir", tuple(int(v) for v in self.ir))
        if len(self.ir) != IR_COUNT:
            raise ValueError(
                f"DataSnapshot.ir must have {IR_COUNT} values, got {len(self.ir)}"
            )


Request = Union[InitRequest, CtrlRequest, DataRequest]
Response = Union[InitAck, CtrlAck, DataSnapshot]

# Protocol TYPE token for each request class
REQUEST_TYPES: dict[type, str] = {
    InitRequest: "INIT",
    CtrlRequest: "CTRL",
    DataRequest: "DATA",
}


def request_type_name(request: Request) -> str:
    return REQUEST_TYPES[type(request)]


def _tokens(datagram: bytes | str) -> list[str]:
    if isinstance(datagram, bytes):
        text = datagram.decode("ascii", errors="replace")
    else:
        text = datagram
    text = text.replace("\x00", "").strip()
    # strtok() semantics: runs of delimiters never yield empty tokens
    return [t for t in text.split(DELIMITER) if t]


def parse_int(token: str) -> int:
    """Parse like C atoi(): leading digits win, anything unparseable is 0."""
    m = _ATOI_RE.match(token)
    return int(m.group(1)) if m else 0


def _speed(token: str, argument: str, strict: bool) -> int:
    if _INT_RE.match(token.strip()):
        return int(token)
    if strict:
        raise InvalidArgument("CTRL", argument, token)
    value = parse_int(token)
    logging.warning("CTRL %s token %r is not an integer; using %d", argument, token, value)
    return value


def decode_request(datagram: bytes | str, strict: bool = False) -> Request:
    """
    Parse one inbound datagram into a request.

    Args:
        datagram: Raw payload as received from the socket.
        strict: Reject CTRL speeds that are not clean integers instead of
            falling back to atoi() semantics.

    Raises:
        ParseError: BadPreamble, MissingType, MissingArgument,
            InvalidArgument (strict only) or UnknownRequestType.
    """
    tokens = _tokens(datagram)

    if not tokens or tokens[0] != PREAMBLE:
        raise BadPreamble(tokens[0] if tokens else None, PREAMBLE)
    if len(tokens) < 2 or tokens[1] != REQ:
        raise BadPreamble(tokens[1] if len(tokens) > 1 else None, REQ)
    if len(tokens) < 3:
        raise MissingType()

    kind = tokens[2]
    if kind == "CTRL":
        if len(tokens) < 4:
            raise MissingArgument("CTRL", "VEL_R")
        if len(tokens) < 5:
            raise MissingArgument("CTRL", "VEL_L")
        return CtrlRequest(
            right_speed=_speed(tokens[3], "VEL_R", strict),
            left_speed=_speed(tokens[4], "VEL_L", strict),
        )
    if kind == "DATA":
        return DataRequest()
    if kind == "INIT":
        return InitRequest()
    raise UnknownRequestType(kind)


def encode_response(response: Response) -> bytes:
    if isinstance(response, InitAck):
        fields = [PREAMBLE, RES, "INIT"]
    elif isinstance(response, CtrlAck):
        # CTRL acks put RES last; kept for wire compatibility
        fields = [PREAMBLE, "CTRL", RES]
    elif isinstance(response, DataSnapshot):
        fields = [PREAMBLE, RES, "DATA", "IR", str(IR_COUNT)]
        fields += [str(v) for v in response.ir]
        fields += ["ENC", str(ENC_COUNT), str(response.encoder_right), str(response.encoder_left)]
    else:
        raise TypeError(f"Not a K3DRV response: {response!r}")
    return DELIMITER.join(fields).encode("ascii")


# ---- Client side ----


def encode_request(request: Request) -> bytes:
    fields = [PREAMBLE, REQ, request_type_name(request)]
    if isinstance(request, CtrlRequest):
        fields += [str(int(request.right_speed)), str(int(request.left_speed))]
    return DELIMITER.join(fields).encode("ascii")


def _expect_count(tokens: list[str], index: int, label: str, count: int) -> None:
    if len(tokens) <= index + 1 or tokens[index] != label:
        raise ParseError(f"Expected {label} section at field {index}")
    if parse_int(tokens[index + 1]) != count:
        raise ParseError(f"Expected {label} count {count}, got {tokens[index + 1]!r}")


def decode_response(datagram: bytes | str) -> Response:
    """Parse a server reply. Raises ParseError on anything unexpected."""
    tokens = _tokens(datagram)
    if not tokens or tokens[0] != PREAMBLE:
        raise BadPreamble(tokens[0] if tokens else None, PREAMBLE)
    if tokens[1:3] == ["CTRL", RES]:
        return CtrlAck()
    if len(tokens) < 2 or tokens[1] != RES:
        raise BadPreamble(tokens[1] if len(tokens) > 1 else None, RES)
    if len(tokens) < 3:
        raise MissingType()

    kind = tokens[2]
    if kind == "INIT":
        return InitAck()
    if kind != "DATA":
        raise UnknownRequestType(kind)

    enc_at = 5 + IR_COUNT
    _expect_count(tokens, 3, "IR", IR_COUNT)
    _expect_count(tokens, enc_at, "ENC", ENC_COUNT)
    if len(tokens) < enc_at + 2 + ENC_COUNT:
        raise MissingArgument("DATA", "ENC")
    values = [parse_int(t) for t in tokens[5:enc_at]]
    return DataSnapshot(
        ir=tuple(values),
        encoder_right=parse_int(tokens[enc_at + 2]),
        encoder_left=parse_int(tokens[enc_at + 3]),
    )
