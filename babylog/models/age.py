"""
Age and calendar arithmetic shared by the percentile estimator and the
reminder engine.

All datetimes are naive local time. "Today" comparisons truncate both sides
to local midnight; elapsed-time comparisons use the full timestamps.
"""
from datetime import date, datetime, time, timedelta
from typing import Union

from config.settings import DAYS_PER_MONTH, MAX_AGE_MONTHS

DateLike = Union[date, datetime]

ONE_DAY = timedelta(days=1)


def as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def start_of_day(value: DateLike) -> datetime:
    return datetime.combine(as_datetime(value).date(), time.min)


def is_same_day(a: DateLike, b: DateLike) -> bool:
    return start_of_day(a) == start_of_day(b)


def calendar_days_between(earlier: DateLike, later: DateLike) -> int:
    """Number of local midnights between two moments, ignoring time of day."""
    return (start_of_day(later) - start_of_day(earlier)).days


def age_in_days(birth_date: DateLike, now: DateLike) -> int:
    return abs(as_datetime(now) - as_datetime(birth_date)) // ONE_DAY


def age_in_weeks(birth_date: DateLike, now: DateLike) -> int:
    return age_in_days(birth_date, now) // 7


def age_in_months(when: DateLike, birth_date: DateLike) -> float:
    """Age in average-length months (30.44 days), clamped to the chart range.

    This is not calendar-month arithmetic: a baby born on Jan 31 is not
    exactly one month old on Feb 28 or Mar 1.
    """
    elapsed = as_datetime(when) - as_datetime(birth_date)
    months = elapsed / timedelta(days=DAYS_PER_MONTH)
    return max(0.0, min(float(MAX_AGE_MONTHS), months))


def hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier) / timedelta(hours=1)


def _plural(n: int, one: str, many: str) -> str:
    return f"{n} {one if n == 1 else many}"


def format_age(birth_date: DateLike, now: DateLike) -> str:
    """Human readable age: days under a month, then 30-day months and days."""
    days = age_in_days(birth_date, now)
    if days < 30:
        return _plural(days, 'day', 'days')
    months, remaining = divmod(days, 30)
    text = _plural(months, 'month', 'months')
    if remaining:
        text += ', ' + _plural(remaining, 'day', 'days')
    return text
