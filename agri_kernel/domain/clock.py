"""
Clock -- injectable source of "now".

Contribution timestamps, grading decisions, savings transaction dates and
the interest rollover check all read time from a Clock handed to the
service, never from the system directly. Tests pass a DeterministicClock
and move it forward by hand, e.g. past a savings anniversary.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta


class Clock(ABC):
    """Timezone-aware UTC time for services."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        """UTC calendar date of ``now()``; savings dates use this."""
        return self.now().astimezone(UTC).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Starts at 2024-01-01 12:00 UTC unless given another instant.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current += timedelta(days=days)
