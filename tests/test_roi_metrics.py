"""
Test suite for the dashboard ROI metrics.
"""

import math
from datetime import date, timedelta
from decimal import Decimal

import pytest

from RoiEngine_core.tracking.metrics import (
    RoiMetrics,
    calculate_max_drawdown,
    calculate_roi_inception,
    calculate_roi_window,
    calculate_volatility,
    compute_metrics,
)
from RoiEngine_core.tracking.nav import NavPoint

D = Decimal


def series(navs, start: date = date(2026, 1, 1), step: int = 1) -> list[NavPoint]:
    points = []
    previous = None
    for i, nav in enumerate(navs):
        nav = D(str(nav))
        ret = D(0) if previous is None else nav / previous - 1
        points.append(NavPoint(day=start + timedelta(days=i * step), nav=nav, daily_return=ret))
        previous = nav
    return points


# ---------------------------------------------------------------------------
# ROI
# ---------------------------------------------------------------------------

def test_roi_inception_is_percent_change_from_first_point():
    assert calculate_roi_inception(series([100, 90, 125])) == D(25)
    assert calculate_roi_inception(series([100, 80])) == D(-20)
    assert calculate_roi_inception([]) == D(0)


def test_roi_30d_uses_point_on_or_after_cutoff():
    # 41 daily points: cutoff is day 10, whose NAV is 110
    points = series([100 + i for i in range(41)])
    roi = calculate_roi_window(points, days=30)
    assert float(roi) == pytest.approx((140 / 110 - 1) * 100)


def test_roi_30d_falls_back_to_first_point_for_short_series():
    points = series([100, 105, 120])
    assert calculate_roi_window(points) == D(20)


# ---------------------------------------------------------------------------
# Drawdown and volatility
# ---------------------------------------------------------------------------

def test_max_drawdown_is_worst_decline_from_peak():
    points = series([100, 120, 90, 130, 117])
    assert calculate_max_drawdown(points) == D(-25)


def test_max_drawdown_never_positive():
    assert calculate_max_drawdown(series([100, 110, 120])) == D(0)
    assert calculate_max_drawdown(series([100, 50, 200, 10])) <= 0


def test_volatility_known_value():
    # Returns 0, +10%, -10%: sample std 0.1
    points = [
        NavPoint(day=date(2026, 1, 1), nav=D(100), daily_return=D(0)),
        NavPoint(day=date(2026, 1, 2), nav=D(110), daily_return=D("0.1")),
        NavPoint(day=date(2026, 1, 3), nav=D(99), daily_return=D("-0.1")),
    ]
    assert float(calculate_volatility(points)) == pytest.approx(10 * math.sqrt(365))


def test_volatility_is_zero_for_flat_or_single_point_series():
    assert calculate_volatility(series([100, 100, 100])) == D(0)
    assert calculate_volatility(series([100])) == D(0)


# ---------------------------------------------------------------------------
# compute_metrics
# ---------------------------------------------------------------------------

def test_compute_metrics_on_empty_series():
    assert compute_metrics([]) == RoiMetrics()


def test_compute_metrics_as_of_last_point():
    metrics = compute_metrics(series([100, 110]))
    assert metrics.as_of_date == date(2026, 1, 2)
    assert metrics.roi_inception == D(10)
    assert metrics.volatility >= 0
    assert metrics.to_dict()["roiInception"] == pytest.approx(10.0)
    assert metrics.to_dict()["asOfDate"] == "2026-01-02"


def test_single_point_metrics_are_zero():
    metrics = compute_metrics(series([100]))
    assert metrics.roi_inception == 0
    assert metrics.roi_30d == 0
    assert metrics.max_drawdown == 0
    assert metrics.volatility == 0
    assert metrics.as_of_date == date(2026, 1, 1)
