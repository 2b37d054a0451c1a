"""
Monthly returns heatmap for the trade equity curve.

Returns are fractions (0.05 means +5%) computed in Decimal. A month's
return compares the last equity point in the month with the first one,
so a month with a single point returns 0.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Optional, Sequence

import pandas as pd

from ..num import ZERO, D, div, power, safe_div, sqrt, to_float, total
from utils.calendar_days import utc_today
from .equity import EquityPoint


@dataclass(frozen=True)
class MonthlyReturn:
    year: int
    month: int
    value: Decimal

    def to_dict(self) -> dict:
        return {"year": self.year, "month": self.month, "return": to_float(self.value)}


@dataclass(frozen=True)
class MonthlyReturnStats:
    average: Decimal = ZERO
    median: Decimal = ZERO
    standard_deviation: Decimal = ZERO
    positive_months: int = 0
    negative_months: int = 0
    total_months: int = 0


def _change(start: Decimal, end: Decimal) -> Decimal:
    return safe_div(end - start, start)


def calculate_monthly_returns(points: Sequence[EquityPoint]) -> list[MonthlyReturn]:
    """Return of every calendar month the curve touches, oldest first."""
    months: dict[tuple[int, int], list[Decimal]] = {}
    for point in points:
        bounds = months.setdefault((point.day.year, point.day.month), [point.equity, point.equity])
        bounds[1] = point.equity

    return [
        MonthlyReturn(year=year, month=month, value=_change(start, end))
        for (year, month), (start, end) in sorted(months.items())
    ]


def calculate_time_range_return(points: Sequence[EquityPoint], start: date, end: date) -> Decimal:
    """Return between the first and last points dated within [start, end]."""
    in_range = [p for p in points if start <= p.day <= end]
    if not in_range:
        return ZERO
    return _change(in_range[0].equity, in_range[-1].equity)


def calculate_ytd_return(
    points: Sequence[EquityPoint],
    today_fn: Callable[[], date] = utc_today,
) -> Decimal:
    today = today_fn()
    return calculate_time_range_return(points, date(today.year, 1, 1), today)


def calculate_last_n_days_return(
    points: Sequence[EquityPoint],
    days: int,
    today_fn: Callable[[], date] = utc_today,
) -> Decimal:
    today = today_fn()
    start = (pd.Timestamp(today) - pd.DateOffset(days=days)).date()
    return calculate_time_range_return(points, start, today)


def calculate_last_n_months_return(
    points: Sequence[EquityPoint],
    months: int,
    today_fn: Callable[[], date] = utc_today,
) -> Decimal:
    """Return since the same day ``months`` months ago (clamped to month end)."""
    today = today_fn()
    start = (pd.Timestamp(today) - pd.DateOffset(months=months)).date()
    return calculate_time_range_return(points, start, today)


def calculate_last_n_years_return(
    points: Sequence[EquityPoint],
    years: int,
    today_fn: Callable[[], date] = utc_today,
) -> Decimal:
    today = today_fn()
    start = (pd.Timestamp(today) - pd.DateOffset(years=years)).date()
    return calculate_time_range_return(points, start, today)


def get_best_worst_months(
    monthly_returns: Sequence[MonthlyReturn],
) -> tuple[Optional[MonthlyReturn], Optional[MonthlyReturn]]:
    """(best, worst); the earliest month wins ties. (None, None) when empty."""
    if not monthly_returns:
        return None, None
    best = worst = monthly_returns[0]
    for monthly in monthly_returns:
        if monthly.value > best.value:
            best = monthly
        if monthly.value < worst.value:
            worst = monthly
    return best, worst


def calculate_monthly_return_stats(monthly_returns: Sequence[MonthlyReturn]) -> MonthlyReturnStats:
    """
    Distribution of monthly returns.

    The median averages the two middle values for an even count; the
    standard deviation is the population one (n denominator).
    """
    if not monthly_returns:
        return MonthlyReturnStats()

    values = [m.value for m in monthly_returns]
    n = D(len(values))
    average = div(total(values), n)

    ordered = sorted(values)
    middle = len(ordered) // 2
    if len(ordered) % 2 == 0:
        median = div(ordered[middle - 1] + ordered[middle], D(2))
    else:
        median = ordered[middle]

    variance = div(total(power(v - average, 2) for v in values), n)

    return MonthlyReturnStats(
        average=average,
        median=median,
        standard_deviation=sqrt(variance),
        positive_months=sum(1 for v in values if v > 0),
        negative_months=sum(1 for v in values if v < 0),
        total_months=len(values),
    )
