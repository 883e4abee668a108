from __future__ import annotations

import pytest

from k3driver.errors import (
    BadPreamble,
    InvalidArgument,
    MissingArgument,
    MissingType,
    ParseError,
    UnknownRequestType,
)
from k3driver.protocol import (
    CtrlAck,
    CtrlRequest,
    DataRequest,
    DataSnapshot,
    InitAck,
    InitRequest,
    decode_request,
    decode_response,
    encode_request,
    encode_response,
    parse_int,
)


@pytest.mark.parametrize(
    "datagram, expected",
    [
        (b"$K3DRV,REQ,INIT", InitRequest()),
        (b"$K3DRV,REQ,DATA", DataRequest()),
        (b"$K3DRV,REQ,CTRL,50,-50", CtrlRequest(right_speed=50, left_speed=-50)),
        (b"$K3DRV,REQ,CTRL,+7,0", CtrlRequest(right_speed=7, left_speed=0)),
        # Trailing newline / NUL terminator from C clients
        (b"$K3DRV,REQ,INIT\n", InitRequest()),
        (b"$K3DRV,REQ,DATA\x00", DataRequest()),
        # strtok() collapses empty fields
        (b"$K3DRV,,REQ,,CTRL,,1,,2", CtrlRequest(right_speed=1, left_speed=2)),
        # Extra fields are ignored
        (b"$K3DRV,REQ,INIT,extra", InitRequest()),
        (b"$K3DRV,REQ,CTRL,1,2,3", CtrlRequest(right_speed=1, left_speed=2)),
    ],
)
def test_decode_valid_requests(datagram, expected):
    assert decode_request(datagram) == expected


def test_decode_accepts_str():
    assert decode_request("$K3DRV,REQ,CTRL,3,4") == CtrlRequest(3, 4)


@pytest.mark.parametrize(
    "datagram",
    [b"", b"K3DRV,REQ,INIT", b"$K3DRV", b"$K3DRV,RES,INIT", b"$k3drv,REQ,INIT", b"\xff\xfe"],
)
def test_decode_bad_preamble(datagram):
    with pytest.raises(BadPreamble):
        decode_request(datagram)


def test_decode_missing_type():
    with pytest.raises(MissingType):
        decode_request(b"$K3DRV,REQ")


@pytest.mark.parametrize("datagram", [b"$K3DRV,REQ,CTRL", b"$K3DRV,REQ,CTRL,10"])
def test_decode_ctrl_missing_argument(datagram):
    with pytest.raises(MissingArgument) as exc:
        decode_request(datagram)
    assert exc.value.request_type == "CTRL"


def test_decode_unknown_type_carries_token():
    with pytest.raises(UnknownRequestType) as exc:
        decode_request(b"$K3DRV,REQ,FOO")
    assert exc.value.token == "FOO"
    assert isinstance(exc.value, ParseError)


def test_decode_type_is_case_sensitive():
    with pytest.raises(UnknownRequestType):
        decode_request(b"$K3DRV,REQ,init")


def test_permissive_numbers_fall_back_like_atoi(caplog):
    assert decode_request(b"$K3DRV,REQ,CTRL,abc,12xyz") == CtrlRequest(0, 12)
    assert "not an integer" in caplog.text


def test_strict_numbers_reject_non_integers():
    with pytest.raises(InvalidArgument) as exc:
        decode_request(b"$K3DRV,REQ,CTRL,abc,5", strict=True)
    assert exc.value.argument == "VEL_R"
    assert decode_request(b"$K3DRV,REQ,CTRL,-5,5", strict=True) == CtrlRequest(-5, 5)


@pytest.mark.parametrize(
    "token, value", [("42", 42), ("-3", -3), ("  8", 8), ("9abc", 9), ("abc", 0), ("", 0), ("+", 0)]
)
def test_parse_int(token, value):
    assert parse_int(token) == value


def test_encode_acks():
    assert encode_response(InitAck()) == b"$K3DRV,RES,INIT"
    assert encode_response(CtrlAck()) == b"$K3DRV,CTRL,RES"


def test_encode_data_snapshot():
    snapshot = DataSnapshot(ir=list(range(1, 12)), encoder_right=100, encoder_left=95)
    assert (
        encode_response(snapshot)
        == b"$K3DRV,RES,DATA,IR,11,1,2,3,4,5,6,7,8,9,10,11,ENC,2,100,95"
    )


def test_encode_rejects_non_response():
    with pytest.raises(TypeError):
        encode_response(InitRequest())  # type: ignore[arg-type]


@pytest.mark.parametrize("count", [0, 10, 12])
def test_snapshot_requires_eleven_ir_values(count):
    with pytest.raises(ValueError):
        DataSnapshot(ir=[0] * count, encoder_right=0, encoder_left=0)


def test_ctrl_decode_then_ack_encode():
    for r, l in [(0, 0), (50, -50), (-30000, 30000)]:
        request = decode_request(f"$K3DRV,REQ,CTRL,{r},{l}")
        assert (request.right_speed, request.left_speed) == (r, l)
        assert encode_response(CtrlAck()) == b"$K3DRV,CTRL,RES"


def test_encode_request():
    assert encode_request(InitRequest()) == b"$K3DRV,REQ,INIT"
    assert encode_request(DataRequest()) == b"$K3DRV,REQ,DATA"
    assert encode_request(CtrlRequest(50, -50)) == b"$K3DRV,REQ,CTRL,50,-50"


def test_decode_response():
    assert decode_response(b"$K3DRV,RES,INIT") == InitAck()
    assert decode_response(b"$K3DRV,CTRL,RES") == CtrlAck()
    snapshot = decode_response(b"$K3DRV,RES,DATA,IR,11,1,2,3,4,5,6,7,8,9,10,11,ENC,2,100,95")
    assert snapshot == DataSnapshot(ir=tuple(range(1, 12)), encoder_right=100, encoder_left=95)


@pytest.mark.parametrize(
    "datagram",
    [
        b"",
        b"$K3DRV,REQ,INIT",
        b"$K3DRV,RES",
        b"$K3DRV,RES,FOO",
        b"$K3DRV,RES,DATA,IR,10,1,2,3,4,5,6,7,8,9,10,ENC,2,1,1",
        b"$K3DRV,RES,DATA,IR,11,1,2,3,4,5,6,7,8,9,10,11,ENC,2,100",
        b"$K3DRV,RES,DATA,IR,11,1,2,3,4,5,6,7,8,9,10,11,XXX,2,100,95",
    ],
)
def test_decode_response_rejects_malformed(datagram):
    with pytest.raises(ParseError):
        decode_response(datagram)
