from __future__ import annotations

from dataclasses import dataclass

from k3driver import constants


@dataclass(frozen=True)
class SessionConfig:
    """Per-listener settings. Shared by reference, never mutated after start."""

    port: int
    control_timeout: float = 0.0  # seconds; control session only, 0 = no failsafe
    verbosity: int = constants.VERBOSITY
    host: str = constants.K3DRV_HOST
    # Explicit logger level; None derives it from verbosity
    log_level: int | None = None

    @property
    def address(self) -> tuple[str, int]:
        return (self.host, self.port)


@dataclass(frozen=True)
class ServiceConfig:
    """Runtime configuration for the whole driver process."""

    control: SessionConfig
    data: SessionConfig
    max_wheel_speed: int = constants.MAX_WHEEL_SPEED
    strict_numbers: bool = constants.STRICT_NUMBERS

    @property
    def verbosity(self) -> int:
        return self.control.verbosity

    @classmethod
    def build(
        cls,
        control_port: int = constants.CONTROL_PORT,
        data_port: int = constants.DATA_PORT,
        timeout: float = constants.CONTROL_TIMEOUT_S,
        verbosity: int = constants.VERBOSITY,
        host: str = constants.K3DRV_HOST,
        max_wheel_speed: int = constants.MAX_WHEEL_SPEED,
        strict_numbers: bool = constants.STRICT_NUMBERS,
        log_level: int | None = None,
    ) -> "ServiceConfig":
        """Validate raw inputs and build the immutable configuration.

        Raises:
            ValueError: On out-of-range ports, negative timeout or verbosity,
                identical ports, or a non-positive speed bound.
        """
        for name, port in (("control port", control_port), ("data port", data_port)):
            if not 0 < int(port) <= 65535:
                raise ValueError(f"Invalid {name}: {port} (expected 1..65535)")
        if int(control_port) == int(data_port):
            raise ValueError(f"Control and data ports must differ (both {control_port})")
        if float(timeout) < 0:
            raise ValueError(f"Invalid timeout: {timeout} (expected >= 0)")
        if int(verbosity) < 0:
            raise ValueError(f"Invalid verbosity: {verbosity} (expected >= 0)")
        if int(max_wheel_speed) <= 0:
            raise ValueError(f"Invalid max wheel speed: {max_wheel_speed} (expected > 0)")

        return cls(
            control=SessionConfig(
                port=int(control_port),
                control_timeout=float(timeout),
                verbosity=int(verbosity),
                host=host,
                log_level=log_level,
            ),
            data=SessionConfig(
                port=int(data_port), verbosity=int(verbosity), host=host, log_level=log_level
            ),
            max_wheel_speed=int(max_wheel_speed),
            strict_numbers=bool(strict_numbers),
        )

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        return cls.build(**constants.read_env())
