"""Injectable time sources for the scheduler."""

from datetime import datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Anything that can report the current naive local time."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time of the running process."""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock:
    """A clock that only moves when told to. Used in tests and replays."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> datetime:
        self.current = self.current + delta
        return self.current
