from __future__ import annotations

import threading
from collections.abc import Sequence

from k3driver.services.gateway import RobotGateway

DEFAULT_IR = (1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11)


class RecordingGateway(RobotGateway):
    """Gateway that records every hardware call and returns canned sensor values."""

    def __init__(
        self,
        infrared: Sequence[int] = DEFAULT_IR,
        odometry: tuple[int, int] = (100, 95),
        max_wheel_speed: int = 30000,
    ) -> None:
        super().__init__(max_wheel_speed=max_wheel_speed)
        self.infrared = tuple(infrared)
        self.odometry = odometry
        self._calls: list[tuple] = []
        self._calls_lock = threading.Lock()

    @property
    def calls(self) -> list[tuple]:
        with self._calls_lock:
            return list(self._calls)

    def count(self, *call: object) -> int:
        return sum(1 for c in self.calls if c == call)

    def _record(self, *call: object) -> None:
        with self._calls_lock:
            self._calls.append(call)

    def _set_wheel_speeds(self, right: int, left: int) -> None:
        self._record("set_wheel_speeds", right, left)

    def _zero_position_counters(self) -> None:
        self._record("zero_position_counters")

    def _read_infrared(self) -> Sequence[int]:
        self._record("read_infrared")
        return self.infrared

    def _read_odometry_delta(self) -> tuple[int, int]:
        self._record("read_odometry_delta")
        return self.odometry


class FailingGateway(RecordingGateway):
    """Raises from the named hardware hook; everything else is recorded normally."""

    def __init__(self, fail_on: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail_on = fail_on

    def _zero_position_counters(self) -> None:
        if self.fail_on == "zero_position_counters":
            raise RuntimeError("motor controller not responding")
        super()._zero_position_counters()

    def _read_infrared(self) -> Sequence[int]:
        if self.fail_on == "read_infrared":
            raise RuntimeError("IR bus error")
        return super()._read_infrared()
