"""Date sources used to decide what counts as "today"."""

from datetime import date, datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def today(self) -> date: ...


class SystemClock:
    """Clock backed by the system time in UTC."""

    def today(self) -> date:
        return datetime.now(timezone.utc).date()


class FixedClock:
    """Clock pinned to a single day, for deterministic callers and tests."""

    def __init__(self, day: date):
        self.day = day

    def today(self) -> date:
        return self.day
