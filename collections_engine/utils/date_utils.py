"""Date manipulation utilities"""

import calendar
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional


def floor_day(moment: date, tz: Optional[tzinfo] = None) -> date:
    """Truncate a date or datetime to its calendar day.

    Aware datetimes are converted to ``tz`` first when one is given; naive
    datetimes are taken to already be in business-local time.
    """
    if isinstance(moment, datetime):
        if tz is not None and moment.tzinfo is not None:
            moment = moment.astimezone(tz)
        return moment.date()
    return moment


def sunday_weekday_index(day: date) -> int:
    """Weekday index with Sunday=0 ... Saturday=6"""
    return (day.weekday() + 1) % 7


def end_of_week(day: date) -> date:
    """Next Sunday after ``day`` (a Sunday maps to the following Sunday)"""
    return day + timedelta(days=7 - sunday_weekday_index(day))


def end_of_month(day: date) -> date:
    """Last calendar day of the month containing ``day``"""
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def add_days(from_date: date, days: int) -> date:
    return from_date + timedelta(days=days)


def parse_iso_date(value: str) -> date:
    """Parse ``YYYY-MM-DD`` or a full ISO-8601 timestamp into a date"""
    try:
        return date.fromisoformat(value)
    except ValueError:
        return datetime.fromisoformat(value).date()
