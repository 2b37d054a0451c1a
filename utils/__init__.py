"""Shared utilities for the ROI engine."""

from utils.calendar_days import (
    utcnow,
    utc_today,
    to_utc_date,
    to_date_key,
    parse_date_key,
    add_days,
    list_calendar_days,
    count_calendar_days,
    days_between,
)

__all__ = [
    "utcnow",
    "utc_today",
    "to_utc_date",
    "to_date_key",
    "parse_date_key",
    "add_days",
    "list_calendar_days",
    "count_calendar_days",
    "days_between",
]
