from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """Source of the current time for job state transitions."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


system_clock = SystemClock()
