"""
Wall clock and the weekly server-reset calendar.

IB resets its servers every Friday night (23:00 - 03:00 ET). Disconnections
can drag on through Saturday, so the whole of Saturday counts as blackout too.
"""

from abc import ABC, abstractmethod
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

REFERENCE_TZ = ZoneInfo("America/New_York")

# 15 minutes ahead of the documented 23:00 start
BLACKOUT_START_FRIDAY = time(22, 45)
# one hour before the Sunday FX market open
BLACKOUT_END_SUNDAY = time(16, 0)

_FRIDAY = 4
_SATURDAY = 5
_SUNDAY = 6


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        if start.tzinfo is None:
            raise ValueError("start must be timezone-aware")
        self._now = start.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> None:
        self._now = self._now + delta

    def set(self, when: datetime) -> None:
        if when.tzinfo is None:
            raise ValueError("when must be timezone-aware")
        self._now = when.astimezone(timezone.utc)


def is_within_blackout(now: datetime) -> bool:
    """True on Saturday or late Friday, New York time."""
    local = now.astimezone(REFERENCE_TZ)
    weekday = local.weekday()
    if weekday == _SATURDAY:
        return True
    return weekday == _FRIDAY and local.time() > BLACKOUT_START_FRIDAY


def next_blackout_end_utc(now: datetime) -> datetime:
    """
    Sunday 16:00 New York time following the local date of `now`, in UTC.

    Always moves to the next Sunday, so a call made on a Sunday returns the
    Sunday one week later.
    """
    local_date = now.astimezone(REFERENCE_TZ).date()
    days_ahead = (_SUNDAY - local_date.weekday()) % 7 or 7
    sunday = local_date + timedelta(days=days_ahead)
    local_end = datetime.combine(sunday, BLACKOUT_END_SUNDAY, tzinfo=REFERENCE_TZ)
    return local_end.astimezone(timezone.utc)


def delay_until(now: datetime, target: datetime) -> timedelta:
    """Non-negative time left until `target`."""
    return max(target - now, timedelta(0))
