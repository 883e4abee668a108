from __future__ import annotations

import logging
import os
from typing import Any

from k3driver.common.logging_config import LOG_LEVELS

# Longest datagram the sessions will read
MAX_DATAGRAM: int = 255


def _resolve_log_level() -> int | None:
    s = os.getenv("K3DRV_LOG_LEVEL")
    if s:
        return LOG_LEVELS.get(s.strip().upper(), logging.WARNING)
    return None


def read_env() -> dict[str, Any]:
    """Parse the K3DRV_* settings from the current environment.

    Keys match the keyword arguments of ServiceConfig.build().
    """
    return {
        # Bind address and ports for the two UDP endpoints
        "host": os.getenv("K3DRV_HOST", "0.0.0.0"),
        "control_port": int(os.getenv("K3DRV_CONTROL_PORT", "4555")),
        "data_port": int(os.getenv("K3DRV_DATA_PORT", "4556")),
        # Seconds of control-channel silence before the failsafe stop (0 disables it)
        "timeout": float(os.getenv("K3DRV_TIMEOUT", "2.0")),
        # 0=quiet, 1=default, 2=verbose, 3=very verbose
        "verbosity": int(os.getenv("K3DRV_VERBOSITY", "1")),
        # Wheel speed bound enforced by the gateway, robot-native units
        "max_wheel_speed": int(os.getenv("K3DRV_MAX_SPEED", "30000")),
        "strict_numbers": os.getenv("K3DRV_STRICT_NUMBERS", "0").lower()
        in ("1", "true", "yes", "on"),
        # None means "derive from verbosity"
        "log_level": _resolve_log_level(),
    }


_ENV = read_env()
K3DRV_HOST: str = _ENV["host"]
CONTROL_PORT: int = _ENV["control_port"]
DATA_PORT: int = _ENV["data_port"]
CONTROL_TIMEOUT_S: float = _ENV["timeout"]
VERBOSITY: int = _ENV["verbosity"]
MAX_WHEEL_SPEED: int = _ENV["max_wheel_speed"]
STRICT_NUMBERS: bool = _ENV["strict_numbers"]
LOG_LEVEL: int | None = _ENV["log_level"]

