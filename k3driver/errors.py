from __future__ import annotations


class ParseError(ValueError):
    """A datagram that does not match the K3DRV grammar.

    Recovered locally by the session loops: logged and answered with silence.
    """


class BadPreamble(ParseError):
    def __init__(self, token: str | None, expected: str) -> None:
        self.token = token
        self.expected = expected
        super().__init__(f"Expected {expected} token, got {token!r}")


class MissingType(ParseError):
    def __init__(self) -> None:
        super().__init__("Expected TYPE token")


class MissingArgument(ParseError):
    def __init__(self, request_type: str, argument: str) -> None:
        self.request_type = request_type
        self.argument = argument
        super().__init__(f"{request_type} expected {argument} token")


class InvalidArgument(ParseError):
    """Raised only by strict decoding for a numeric token that is not an integer."""

    def __init__(self, request_type: str, argument: str, token: str) -> None:
        self.request_type = request_type
        self.argument = argument
        self.token = token
        super().__init__(f"{request_type} {argument} is not an integer: {token!r}")


class UnknownRequestType(ParseError):
    def __init__(self, token: str, channel: str | None = None) -> None:
        self.token = token
        self.channel = channel
        if channel:
            msg = f"Request type {token!r} is not served on the {channel} channel"
        else:
            msg = f"Expected CTRL, DATA, or INIT token, got {token!r}"
        super().__init__(msg)


class TransportError(RuntimeError):
    """Socket failure (bind, receive, send). Fatal for the owning session loop."""
