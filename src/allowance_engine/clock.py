"""Injectable clock so services never call ``datetime.now()`` directly."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


class Clock(ABC):
    """Abstract clock interface.

    ``now()`` always returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current UTC time."""
        ...

    def today(self, tz_name: str) -> date:
        """Get the current calendar date in the given IANA timezone."""
        return self.now().astimezone(ZoneInfo(tz_name)).date()


class SystemClock(Clock):
    """Production clock returning the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Test clock with controlled time."""

    def __init__(self, current: datetime):
        self._current = as_utc(current)

    def now(self) -> datetime:
        return self._current

    def advance(self, delta: timedelta) -> None:
        """Move the clock forward."""
        self._current = self._current + delta

    def set(self, current: datetime) -> None:
        """Jump to an absolute time."""
        self._current = as_utc(current)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC.

    SQLite hands back naive datetimes for ``DateTime(timezone=True)``
    columns; values written by the engine are always UTC, so a naive value
    is interpreted as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
