"""
Test suite for the monthly returns heatmap.
"""

import math
from datetime import date
from decimal import Decimal

import pytest

from RoiEngine_core.perf.equity import EquityPoint
from RoiEngine_core.perf.heatmap import (
    MonthlyReturn,
    calculate_last_n_days_return,
    calculate_last_n_months_return,
    calculate_last_n_years_return,
    calculate_monthly_return_stats,
    calculate_monthly_returns,
    calculate_time_range_return,
    calculate_ytd_return,
    get_best_worst_months,
)

D = Decimal

TODAY = date(2026, 4, 30)


def curve(*pairs) -> list[EquityPoint]:
    return [EquityPoint(day=day, equity=D(str(equity)), drawdown=D(0), trades=0) for day, equity in pairs]


@pytest.fixture
def points():
    return curve(
        (date(2026, 1, 30), 100),
        (date(2026, 1, 31), 110),
        (date(2026, 2, 1), 110),
        (date(2026, 2, 28), 99),
        (date(2026, 3, 1), 99),
        (date(2026, 3, 31), 99),
        (date(2026, 4, 1), 100),
        (date(2026, 4, 30), 125),
    )


def test_monthly_returns_compare_first_and_last_point(points):
    monthly = calculate_monthly_returns(points)

    assert [(m.year, m.month) for m in monthly] == [(2026, 1), (2026, 2), (2026, 3), (2026, 4)]
    assert [m.value for m in monthly] == [D("0.1"), D("-0.1"), D(0), D("0.25")]


def test_monthly_returns_sorted_across_years():
    monthly = calculate_monthly_returns(curve((date(2026, 1, 5), 100), (date(2025, 12, 5), 100)))
    assert [(m.year, m.month) for m in monthly] == [(2025, 12), (2026, 1)]


def test_zero_starting_equity_gives_zero_return():
    monthly = calculate_monthly_returns(curve((date(2026, 1, 1), 0), (date(2026, 1, 2), 50)))
    assert monthly[0].value == D(0)
    assert calculate_monthly_returns([]) == []


def test_time_range_returns(points):
    assert calculate_time_range_return(points, date(2026, 2, 1), date(2026, 2, 28)) == D("-0.1")
    assert calculate_time_range_return(points, date(2025, 1, 1), date(2025, 12, 31)) == D(0)

    today_fn = lambda: TODAY  # noqa: E731
    assert calculate_ytd_return(points, today_fn=today_fn) == D("0.25")
    # Both windows start on 03-31 (NAV 99)
    assert float(calculate_last_n_days_return(points, 30, today_fn=today_fn)) == pytest.approx(125 / 99 - 1)
    assert float(calculate_last_n_months_return(points, 1, today_fn=today_fn)) == pytest.approx(125 / 99 - 1)
    assert calculate_last_n_years_return(points, 1, today_fn=today_fn) == D("0.25")


def test_best_and_worst_months(points):
    best, worst = get_best_worst_months(calculate_monthly_returns(points))

    assert (best.year, best.month) == (2026, 4)
    assert (worst.year, worst.month) == (2026, 2)
    assert get_best_worst_months([]) == (None, None)


def test_monthly_return_stats(points):
    stats = calculate_monthly_return_stats(calculate_monthly_returns(points))

    assert stats.average == D("0.0625")
    # Even count: mean of the two middle values
    assert stats.median == D("0.05")
    assert float(stats.standard_deviation) == pytest.approx(math.sqrt(0.01671875))
    assert stats.positive_months == 2
    assert stats.negative_months == 1
    assert stats.total_months == 4


def test_monthly_return_stats_odd_count_and_empty():
    returns = [MonthlyReturn(2026, m, D(v)) for m, v in [(1, "0.3"), (2, "-0.2"), (3, "0.1")]]
    assert calculate_monthly_return_stats(returns).median == D("0.1")
    assert calculate_monthly_return_stats([]).total_months == 0


def test_monthly_return_to_dict():
    assert MonthlyReturn(2026, 3, D("0.125")).to_dict() == {"year": 2026, "month": 3, "return": 0.125}
