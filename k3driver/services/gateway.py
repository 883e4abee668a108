from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence

from k3driver.constants import MAX_WHEEL_SPEED
from k3driver.protocol import IR_COUNT


class RobotGateway(ABC):
    """
    Boundary over the robot's actuators and sensors.

    Every public call runs under one lock so the control and data sessions can
    share a gateway without torn updates. Subclasses implement the underscored
    hooks and never need their own locking.
    """

    def __init__(self, max_wheel_speed: int = MAX_WHEEL_SPEED) -> None:
        if max_wheel_speed <= 0:
            raise ValueError(f"max_wheel_speed must be > 0, got {max_wheel_speed}")
        self.max_wheel_speed = int(max_wheel_speed)
        self._lock = threading.Lock()

    def clamp_speed(self, speed: int) -> int:
        limit = self.max_wheel_speed
        if speed > limit:
            return limit
        if speed < -limit:
            return -limit
        return speed

    def set_wheel_speeds(self, right: int, left: int) -> tuple[int, int]:
        """Command both wheels. Out-of-range speeds are clamped; returns what was applied."""
        applied = (self.clamp_speed(int(right)), self.clamp_speed(int(left)))
        if applied != (right, left):
            logging.warning(
                "Wheel speeds (%d,%d) outside +/-%d; clamped to (%d,%d)",
                right,
                left,
                self.max_wheel_speed,
                applied[0],
                applied[1],
            )
        with self._lock:
            self._set_wheel_speeds(*applied)
        return applied

    def zero_position_counters(self) -> None:
        with self._lock:
            self._zero_position_counters()

    def read_infrared(self) -> tuple[int, ...]:
        with self._lock:
            values = tuple(int(v) for v in self._read_infrared())
        if len(values) != IR_COUNT:
            raise RuntimeError(f"Gateway returned {len(values)} IR values, expected {IR_COUNT}")
        return values

    def read_odometry_delta(self) -> tuple[int, int]:
        """Encoder counts (right, left) accumulated since the previous call."""
        with self._lock:
            right, left = self._read_odometry_delta()
        return int(right), int(left)

    def stop(self) -> None:
        """Best-effort zero-speed command used on shutdown."""
        with self._lock:
            self._set_wheel_speeds(0, 0)

    def close(self) -> None:
        """Release hardware resources. Default: nothing to release."""

    @abstractmethod
    def _set_wheel_speeds(self, right: int, left: int) -> None: ...

    @abstractmethod
    def _zero_position_counters(self) -> None: ...

    @abstractmethod
    def _read_infrared(self) -> Sequence[int]: ...

    @abstractmethod
    def _read_odometry_delta(self) -> tuple[int, int]: ...


class SimulatedGateway(RobotGateway):
    """
    In-memory stand-in for the K3 drive, used when no hardware is attached.

    Wheel positions integrate the commanded speeds over wall-clock time
    (``counts_per_speed_s`` encoder counts per speed unit per second). IR
    readings are fixed values settable with ``set_infrared``.
    """

    def __init__(
        self,
        max_wheel_speed: int = MAX_WHEEL_SPEED,
        counts_per_speed_s: float = 1.0,
        infrared: Sequence[int] | None = None,
        clock=time.monotonic,
    ) -> None:
        super().__init__(max_wheel_speed=max_wheel_speed)
        self.counts_per_speed_s = counts_per_speed_s
        self._clock = clock
        self._speeds = (0, 0)
        self._position = [0.0, 0.0]  # right, left
        self._reported = [0, 0]
        self._last_t = clock()
        self._infrared: tuple[int, ...] = (0,) * IR_COUNT
        if infrared is not None:
            self.set_infrared(infrared)

    @property
    def speeds(self) -> tuple[int, int]:
        with self._lock:
            return self._speeds

    @property
    def positions(self) -> tuple[int, int]:
        with self._lock:
            self._integrate()
            return int(self._position[0]), int(self._position[1])

    def set_infrared(self, values: Sequence[int]) -> None:
        values = tuple(int(v) for v in values)
        if len(values) != IR_COUNT:
            raise ValueError(f"Expected {IR_COUNT} IR values, got {len(values)}")
        with self._lock:
            self._infrared = values

    def _integrate(self) -> None:
        now = self._clock()
        dt = max(0.0, now - self._last_t)
        self._last_t = now
        right, left = self._speeds
        self._position[0] += right * dt * self.counts_per_speed_s
        self._position[1] += left * dt * self.counts_per_speed_s

    def _set_wheel_speeds(self, right: int, left: int) -> None:
        self._integrate()
        self._speeds = (right, left)

    def _zero_position_counters(self) -> None:
        self._integrate()
        self._position = [0.0, 0.0]
        self._reported = [0, 0]

    def _read_infrared(self) -> Sequence[int]:
        return self._infrared

    def _read_odometry_delta(self) -> tuple[int, int]:
        self._integrate()
        right, left = int(self._position[0]), int(self._position[1])
        delta = (right - self._reported[0], left - self._reported[1])
        self._reported = [right, left]
        return delta
