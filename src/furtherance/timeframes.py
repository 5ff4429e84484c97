"""Translate report timeframe selections into concrete date ranges."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

EPOCH = datetime(1970, 1, 1)
_ONE_MICROSECOND = timedelta(microseconds=1)


class Timeframe(str, Enum):
    THIS_WEEK = "this_week"
    LAST_WEEK = "last_week"
    PAST_7_DAYS = "past_7_days"
    THIS_MONTH = "this_month"
    LAST_MONTH = "last_month"
    PAST_30_DAYS = "past_30_days"
    PAST_180_DAYS = "past_180_days"
    PAST_365_DAYS = "past_365_days"
    ALL_TIME = "all_time"
    CUSTOM = "custom"


_ROLLING_DAYS = {
    Timeframe.PAST_7_DAYS: 6,
    Timeframe.PAST_30_DAYS: 29,
    Timeframe.PAST_180_DAYS: 179,
    Timeframe.PAST_365_DAYS: 364,
}


@dataclass(frozen=True, slots=True)
class DateRange:
    start: datetime
    end: datetime

    @property
    def days(self) -> int:
        """Number of calendar days touched by the range, inclusive."""
        return (self.end.date() - self.start.date()).days + 1

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def as_local(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time, the storage convention."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    return start_of_day(value) + timedelta(days=1) - _ONE_MICROSECOND


def start_of_week(value: datetime, first_weekday: int = 0) -> datetime:
    """Start of the week containing ``value``; ``first_weekday`` 0 is Monday."""
    offset = (value.weekday() - first_weekday) % 7
    return start_of_day(value) - timedelta(days=offset)


def end_of_week(value: datetime, first_weekday: int = 0) -> datetime:
    return start_of_week(value, first_weekday) + timedelta(weeks=1) - _ONE_MICROSECOND


def start_of_month(value: datetime) -> datetime:
    return start_of_day(value).replace(day=1)


def end_of_month(value: datetime) -> datetime:
    first = start_of_month(value)
    if first.month == 12:
        following = first.replace(year=first.year + 1, month=1)
    else:
        following = first.replace(month=first.month + 1)
    return following - _ONE_MICROSECOND


def resolve_timeframe(
    timeframe: Timeframe,
    now: Optional[datetime] = None,
    *,
    custom_start: Optional[datetime] = None,
    custom_end: Optional[datetime] = None,
    first_weekday: int = 0,
) -> DateRange:
    """Return the ``[start, end]`` range a timeframe covers at ``now``."""
    now = now or datetime.now()
    today = start_of_day(now)

    if timeframe is Timeframe.THIS_WEEK:
        return DateRange(start_of_week(now, first_weekday), now)
    if timeframe is Timeframe.LAST_WEEK:
        start = start_of_week(today - timedelta(weeks=1), first_weekday)
        return DateRange(start, end_of_week(start, first_weekday))
    if timeframe in _ROLLING_DAYS:
        return DateRange(today - timedelta(days=_ROLLING_DAYS[timeframe]), now)
    if timeframe is Timeframe.THIS_MONTH:
        return DateRange(start_of_month(now), now)
    if timeframe is Timeframe.LAST_MONTH:
        start = start_of_month(start_of_month(now) - timedelta(days=1))
        return DateRange(start, end_of_month(start))
    if timeframe is Timeframe.ALL_TIME:
        return DateRange(EPOCH, now)
    return custom_range(custom_start or today, custom_end or now)


def custom_range(start: datetime, end: datetime) -> DateRange:
    """Clamp a user supplied range: end to end-of-day, start into ``[epoch, end]``."""
    end = end_of_day(end)
    start = max(start_of_day(start), EPOCH)
    if start > end:
        start = end
    return DateRange(start, end)
