"""
Time helpers shared by the progression services.

Every service takes an optional clock so tests can pin "now". Calendar
dates (streaks, daily progress, quests) are taken in the configured
learner timezone, not UTC.
"""

from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from skilltree.config import settings

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@lru_cache()
def learner_timezone(name: str = None) -> tzinfo:
    name = name or settings.LEARNER_TIMEZONE
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def local_date(now: datetime, tz: tzinfo = None) -> date:
    """Calendar date of an instant in the learner timezone."""
    return now.astimezone(tz or learner_timezone()).date()


def next_local_midnight(now: datetime, tz: tzinfo = None) -> datetime:
    """Start of the next calendar day in the learner timezone, as UTC."""
    tz = tz or learner_timezone()
    tomorrow = local_date(now, tz) + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=tz).astimezone(timezone.utc)
