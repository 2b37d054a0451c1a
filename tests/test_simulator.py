"""
Test suite for the growth simulator and allocation split.
"""

from datetime import date
from decimal import Decimal

import pytest

from RoiEngine_core.tracking.nav import NavPoint
from RoiEngine_core.tracking.simulator import (
    SimulatorInput,
    SimulatorResult,
    calculate_allocation_split,
    contribution_dates,
    run_simulation,
)
from RoiEngine_core.tracking.tracker import RoiTracker

D = Decimal


def nav_points(*pairs) -> list[NavPoint]:
    return [NavPoint(day=day, nav=D(str(nav)), daily_return=D(0)) for day, nav in pairs]


@pytest.fixture
def points():
    return nav_points(
        (date(2026, 1, 15), 100),
        (date(2026, 1, 31), 100),
        (date(2026, 2, 1), 110),
        (date(2026, 2, 15), 88),
        (date(2026, 3, 1), 99),
        (date(2026, 3, 10), 110),
    )


# ---------------------------------------------------------------------------
# Allocation split
# ---------------------------------------------------------------------------

def test_allocation_split_clamps_cash_weight():
    assert calculate_allocation_split(D("0.25")).cash_pct == D(25)
    assert calculate_allocation_split(D("0.25")).invested_pct == D(75)
    assert calculate_allocation_split(D("1.5")).invested_pct == D(0)
    assert calculate_allocation_split(D("-0.2")).to_dict() == {"investedPct": 100.0, "cashPct": 0.0}
    assert calculate_allocation_split(None).to_dict() == {"investedPct": 0.0, "cashPct": 0.0}


def test_allocation_split_of_stored_allocation(engine):
    tracker = RoiTracker(engine)
    tracker.record_allocation_snapshot("core-basket", date(2026, 1, 1), [{"asset": "BTC", "weight": "1"}])
    tracker.record_allocation_snapshot("core-basket", date(2026, 2, 1), [{"asset": "BTC", "weight": "0.6"}])

    latest = tracker.get_latest_allocation("core-basket")
    split = calculate_allocation_split(latest.cash_weight)

    assert split.cash_pct == D(40)
    assert split.invested_pct == D(60)
    january = tracker.get_latest_allocation("core-basket", as_of=date(2026, 1, 31))
    assert calculate_allocation_split(january.cash_weight).cash_pct == D(0)
    assert tracker.get_latest_allocation("unknown") is None


# ---------------------------------------------------------------------------
# Simulator
# ---------------------------------------------------------------------------

def test_contribution_dates():
    assert contribution_dates(date(2026, 2, 1), date(2026, 3, 10)) == [date(2026, 2, 1), date(2026, 3, 1)]
    assert contribution_dates(date(2026, 1, 15), date(2026, 3, 10)) == [date(2026, 2, 1), date(2026, 3, 1)]
    assert contribution_dates(date(2026, 1, 15), date(2026, 1, 31)) == []


def test_simulation_with_monthly_contributions(points):
    result = run_simulation(points, SimulatorInput(
        starting_capital=D(1000),
        monthly_contribution=D(100),
        start_date=date(2026, 1, 20),
        include_monthly_contributions=True,
    ))

    # Starts on 01-15, the last point on or before 01-20
    assert result.series[0].day == date(2026, 1, 15)
    assert [p.balance for p in result.series[:5]] == [D(1000), D(1000), D(1200), D(960), D(1180)]
    assert float(result.final_balance) == pytest.approx(1200 + 100 * 110 / 99)
    assert result.total_contributed == D(1200)
    assert float(result.roi_pct) == pytest.approx((100 * 110 / 99 - 100) / 1200 * 100)
    assert result.max_drawdown_pct == D(-20)
    assert result.max_drawdown_amount == D(240)


def test_simulation_without_contributions(points):
    result = run_simulation(points, SimulatorInput(
        starting_capital=D(1000),
        monthly_contribution=D(100),
        start_date=date(2026, 2, 1),
    ))

    assert [p.day for p in result.series][0] == date(2026, 2, 1)
    assert result.total_contributed == D(1000)
    assert result.final_balance == D(1000)
    assert result.profit == D(0)
    assert result.max_drawdown_pct == D(-20)


def test_start_before_series_uses_first_point(points):
    result = run_simulation(points, SimulatorInput(starting_capital=D(500), start_date=date(2025, 6, 1)))

    assert len(result.series) == len(points)
    assert result.final_balance == D(550)
    assert result.roi_pct == D(10)


def test_negative_inputs_count_as_zero(points):
    result = run_simulation(points, SimulatorInput(
        starting_capital=D(-1000),
        monthly_contribution=D(-5),
        start_date=date(2026, 1, 15),
        include_monthly_contributions=True,
    ))

    assert result.total_contributed == D(0)
    assert result.roi_pct == D(0)
    assert {p.balance for p in result.series} == {D(0)}


def test_empty_series():
    result = run_simulation([], SimulatorInput(starting_capital=D(1000), start_date=date(2026, 1, 1)))

    assert result == SimulatorResult()
    assert result.to_dict()["series"] == []
