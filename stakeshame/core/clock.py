"""
Injectable clock.

Everything that asks "what day is it" goes through a Clock so the
reconciliation sweep and the scheduler can be driven from tests.
"""

from datetime import date, datetime, timezone
from typing import Optional, Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """Source of the current time."""

    def now(self, tz: Optional[str] = None) -> datetime:
        ...

    def today(self, tz: Optional[str] = None) -> date:
        ...


class SystemClock:
    """Wall clock, localized to a default timezone."""

    def __init__(self, default_tz: str = "UTC"):
        self.default_tz = default_tz

    def now(self, tz: Optional[str] = None) -> datetime:
        return datetime.now(ZoneInfo(tz or self.default_tz))

    def today(self, tz: Optional[str] = None) -> date:
        return self.now(tz).date()


class FixedClock:
    """
    Clock pinned to a given instant.

    `set()` and `advance()` move it. Naive datetimes are taken as UTC.
    """

    def __init__(self, instant: datetime, default_tz: str = "UTC"):
        self.default_tz = default_tz
        self.set(instant)

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant

    def advance(self, delta) -> None:
        self._instant = self._instant + delta

    def now(self, tz: Optional[str] = None) -> datetime:
        return self._instant.astimezone(ZoneInfo(tz or self.default_tz))

    def today(self, tz: Optional[str] = None) -> date:
        return self.now(tz).date()


def utcnow() -> datetime:
    """Naive UTC timestamp for DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_stamp(clock: Optional[Clock] = None) -> datetime:
    """Naive UTC timestamp from `clock`, the wall clock when none is given."""
    if clock is None:
        return utcnow()
    return clock.now("UTC").replace(tzinfo=None)


def to_local(stamp: datetime, tz: str) -> datetime:
    """A naive UTC column value in the given timezone."""
    return stamp.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz))
