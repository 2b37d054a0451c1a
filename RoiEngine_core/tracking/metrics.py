"""
ROI Metrics Calculation Module.

Summary figures shown on the ROI dashboard, computed from a NAV series:
- ROI since inception
- ROI over the trailing 30 calendar days
- Maximum drawdown
- Annualized volatility of daily returns

All values are percentages (12.5 means +12.5%) computed in Decimal.
Crypto trades every calendar day, so volatility annualizes with 365 days.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Sequence

from ..config import ANNUALIZATION_DAYS, ROI_LOOKBACK_DAYS
from ..num import HUNDRED, ONE, ZERO, D, div, mul, percentage_change, sample_std, sqrt, to_float
from .nav import NavPoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoiMetrics:
    roi_inception: Decimal = ZERO
    roi_30d: Decimal = ZERO
    max_drawdown: Decimal = ZERO
    volatility: Decimal = ZERO
    as_of_date: Optional[date] = None

    def to_dict(self) -> dict:
        """Display values (floats) keyed the way the dashboard reads them."""
        return {
            "roiInception": to_float(self.roi_inception),
            "roi30d": to_float(self.roi_30d),
            "maxDrawdown": to_float(self.max_drawdown),
            "volatility": to_float(self.volatility),
            "asOfDate": self.as_of_date.isoformat() if self.as_of_date else None,
        }


def calculate_roi_inception(points: Sequence[NavPoint]) -> Decimal:
    if not points:
        return ZERO
    return mul(percentage_change(points[0].nav, points[-1].nav), HUNDRED)


def calculate_roi_window(points: Sequence[NavPoint], days: int = ROI_LOOKBACK_DAYS) -> Decimal:
    """
    ROI over the trailing ``days`` calendar days.

    The reference point is the first point dated on or after
    ``last.day - days``; if none exists the first point is used.
    """
    if not points:
        return ZERO
    last = points[-1]
    cutoff = last.day - timedelta(days=days)
    reference = next((p for p in points if p.day >= cutoff), points[0])
    return mul(percentage_change(reference.nav, last.nav), HUNDRED)


def calculate_max_drawdown(points: Sequence[NavPoint]) -> Decimal:
    """
    Most negative peak-to-trough decline, as a percentage (<= 0).
    """
    peak: Optional[Decimal] = None
    worst = ZERO
    for point in points:
        if peak is None or point.nav > peak:
            peak = point.nav
        if peak.is_zero():
            continue
        drawdown = mul(div(point.nav, peak) - ONE, HUNDRED)
        if drawdown < worst:
            worst = drawdown
    return worst


def calculate_volatility(points: Sequence[NavPoint], periods_per_year: int = ANNUALIZATION_DAYS) -> Decimal:
    """
    Annualized volatility of daily returns, as a percentage.

    Uses the sample standard deviation of every point's daily return
    (the inception point's 0 included). Fewer than 2 points gives 0.
    """
    returns = [p.daily_return for p in points]
    if len(returns) < 2:
        return ZERO
    return mul(mul(sample_std(returns), sqrt(D(periods_per_year))), HUNDRED)


def compute_metrics(points: Sequence[NavPoint]) -> RoiMetrics:
    """
    Calculate all dashboard metrics for a NAV series.

    Args:
        points: NavPoints ordered by day

    Returns:
        RoiMetrics; all zeros and as_of_date None for an empty series
    """
    if not points:
        return RoiMetrics()

    metrics = RoiMetrics(
        roi_inception=calculate_roi_inception(points),
        roi_30d=calculate_roi_window(points),
        max_drawdown=calculate_max_drawdown(points),
        volatility=calculate_volatility(points),
        as_of_date=points[-1].day,
    )
    logger.debug(f"Metrics as of {metrics.as_of_date}: {metrics.to_dict()}")
    return metrics
