"""
Core Module - Clock and Day Keys.

============================================================
RESPONSIBILITY
============================================================
Provides a testable clock abstraction and the calendar-day
arithmetic every scoring component shares.

- All "now" lookups go through a ClockProtocol
- Day keys are calendar days in the user's local time zone
- Sample timestamps are stored tz-aware (UTC when naive)

============================================================
DESIGN PRINCIPLES
============================================================
- Clocks return UTC; conversion to local time happens only
  when deriving a day key or a time-of-day
- Mockable for testing
- Thread-safe

============================================================
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo
import threading
import time


MINUTES_PER_DAY = 24 * 60


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for system clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    @abstractmethod
    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        pass

    def today(self, tz: Optional[tzinfo] = None) -> date:
        """Get the current calendar day in ``tz`` (UTC by default)."""
        return local_day(self.now(), tz or timezone.utc)

    def seconds_since(self, moment: datetime) -> float:
        """Elapsed seconds between ``moment`` and now."""
        return (self.now() - ensure_aware(moment)).total_seconds()


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """Production clock using actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        return time.time()


# ============================================================
# MOCK CLOCK (TESTING / REPLAY)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for tests and sample replay.

    Allows time manipulation for deterministic freshness windows.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        """
        Initialize mock clock.

        Args:
            initial_time: Starting time (defaults to current UTC)
        """
        self._time = ensure_aware(initial_time or datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def timestamp(self) -> float:
        with self._lock:
            return self._time.timestamp()

    def set_time(self, new_time: datetime) -> None:
        """Set the current time."""
        with self._lock:
            self._time = ensure_aware(new_time)

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (hours, minutes, days, etc.)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)


# ============================================================
# DAY KEY UTILITIES
# ============================================================

def resolve_timezone(name: Optional[str]) -> tzinfo:
    """
    Resolve an IANA zone name.

    ``None``, empty string and "UTC" all map to UTC.
    """
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def local_day(dt: datetime, tz: tzinfo) -> date:
    """Calendar day of ``dt`` in the given zone."""
    return ensure_aware(dt).astimezone(tz).date()


def day_start(day: date, tz: tzinfo) -> datetime:
    """First instant of ``day`` in ``tz``, as an aware datetime."""
    return datetime(day.year, day.month, day.day, tzinfo=tz)


def day_bounds(start_day: date, end_day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Half-open instant range covering ``[start_day, end_day)``."""
    return day_start(start_day, tz), day_start(end_day, tz)


def minutes_after_midnight(dt: datetime, tz: tzinfo) -> float:
    """Local time-of-day of ``dt`` in minutes (0-1440)."""
    local = ensure_aware(dt).astimezone(tz)
    return local.hour * 60 + local.minute + local.second / 60.0


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    # Protocols
    "ClockProtocol",

    # Implementations
    "SystemClock",
    "MockClock",

    # Utilities
    "MINUTES_PER_DAY",
    "resolve_timezone",
    "ensure_aware",
    "local_day",
    "day_start",
    "day_bounds",
    "minutes_after_midnight",
]
