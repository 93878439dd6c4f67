"""
Habit Calendar Service - Timezone-aware local day resolution
"""

from datetime import datetime, date, time, timedelta
from typing import Iterator, NamedTuple, Optional, Tuple
import logging

import pytz

from habit_tracker.core.errors import InvalidDateRange, InvalidTimezone

logger = logging.getLogger(__name__)

WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


class LocalDay(NamedTuple):
    date: date
    weekday: str


def resolve_timezone(timezone_name: str):
    """Look up an IANA zone, rejecting unknown identifiers instead of falling back to UTC"""
    if not timezone_name or not isinstance(timezone_name, str):
        raise InvalidTimezone(timezone_name)
    try:
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Rejected unknown timezone '{timezone_name}'")
        raise InvalidTimezone(timezone_name)


def weekday_label(day: date) -> str:
    return WEEKDAY_LABELS[day.weekday()]


def as_utc(instant: datetime) -> datetime:
    """Normalize an instant to aware UTC; naive values are already UTC"""
    if instant.tzinfo is None:
        return pytz.utc.localize(instant)
    return instant.astimezone(pytz.utc)


def local_datetime(instant: datetime, timezone_name: str) -> datetime:
    """Wall-clock time of an instant in the given zone"""
    tz = resolve_timezone(timezone_name)
    try:
        return as_utc(instant).astimezone(tz)
    except OverflowError:
        raise InvalidDateRange(instant, instant, f"Instant {instant} is outside the supported calendar")


def local_day(instant: datetime, timezone_name: str) -> LocalDay:
    """Calendar date and weekday of an instant as perceived in the given zone"""
    local_date = local_datetime(instant, timezone_name).date()
    return LocalDay(local_date, weekday_label(local_date))


def local_today(timezone_name: str, now: Optional[datetime] = None) -> date:
    if now is None:
        now = datetime.now(pytz.utc)
    return local_day(now, timezone_name).date


def _local_midnight(day: date, tz) -> datetime:
    naive = datetime.combine(day, time.min)
    try:
        return tz.localize(naive, is_dst=None)
    except pytz.NonExistentTimeError:
        # Midnight skipped by a forward transition; the day starts at the first real instant
        return tz.normalize(tz.localize(naive, is_dst=False))
    except pytz.AmbiguousTimeError:
        # Midnight repeated by a backward transition; the earlier occurrence starts the day
        return tz.localize(naive, is_dst=True)


def day_bounds(day: date, timezone_name: str) -> Tuple[datetime, datetime]:
    """
    UTC instants bounding a local calendar day: [start, end).

    The span follows the zone's offsets on that specific date, so transition
    days come out as 23 or 25 hours rather than a fixed 24.
    """
    tz = resolve_timezone(timezone_name)
    try:
        start = _local_midnight(day, tz).astimezone(pytz.utc)
        end = _local_midnight(day + timedelta(days=1), tz).astimezone(pytz.utc)
    except OverflowError:
        # First and last days of the calendar have no representable neighbour
        raise InvalidDateRange(day, day, f"Date {day} is outside the supported calendar")
    return start, end


def iter_days(start: date, end: date) -> Iterator[date]:
    """Inclusive chronological iteration; empty when end precedes start"""
    if end < start:
        return
    current = start
    while True:
        yield current
        if current >= end:
            break
        current += timedelta(days=1)
