"""
Calendar-day utilities for the ROI engine.

Crypto markets quote every day of the year, so NAV series are built on a
plain calendar (no weekends or holidays removed). All dates are UTC calendar
days; timestamps are converted with ``to_utc_date`` before use.

Usage:
    from utils.calendar_days import list_calendar_days, to_utc_date

    days = list_calendar_days(date(2026, 1, 1), date(2026, 1, 10))
"""

from datetime import date, datetime, timedelta, timezone
from typing import Union

import pandas as pd


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Aware UTC copy of a datetime.

    Naive values are taken to be UTC already (SQLite hands stored timestamps
    back without tzinfo); aware values are converted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def to_utc_date(value: Union[date, datetime, str, pd.Timestamp]) -> date:
    """
    Normalize a date-like value to a UTC calendar day.

    Aware datetimes are converted to UTC first; naive datetimes are assumed
    to already be UTC. Strings are parsed as ISO dates or timestamps.
    """
    if isinstance(value, str):
        value = pd.Timestamp(value)
    if isinstance(value, pd.Timestamp):
        if value.tzinfo is not None:
            value = value.tz_convert("UTC")
        return value.date()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def to_date_key(value: Union[date, datetime]) -> str:
    """ISO 'YYYY-MM-DD' key for a day."""
    return to_utc_date(value).isoformat()


def parse_date_key(key: str) -> date:
    return date.fromisoformat(key[:10])


def add_days(d: date, days: int) -> date:
    return d + timedelta(days=days)


def list_calendar_days(start_date: date, end_date: date) -> list[date]:
    """
    Every calendar day from start_date to end_date inclusive.

    Returns an empty list when start_date is after end_date.
    """
    if start_date > end_date:
        return []
    return [ts.date() for ts in pd.date_range(start=start_date, end=end_date, freq="D")]


def count_calendar_days(start_date: date, end_date: date) -> int:
    if start_date > end_date:
        return 0
    return (end_date - start_date).days + 1


def days_between(start: Union[date, datetime], end: Union[date, datetime]) -> int:
    """Whole calendar days from start to end (negative if end is earlier)."""
    return (to_utc_date(end) - to_utc_date(start)).days
