"""
Growth simulator and allocation split for the ROI dashboard.

The simulator replays a stored NAV series as if a starting capital had been
invested on a chosen day, optionally adding a fixed contribution on the
first of every month. Each contribution buys in at the NAV in effect on its
day and then grows with the series.

Usage:
    from RoiEngine_core.tracking.simulator import SimulatorInput, run_simulation

    result = run_simulation(points, SimulatorInput(
        starting_capital=Decimal("10000"),
        monthly_contribution=Decimal("500"),
        start_date=date(2025, 6, 1),
        include_monthly_contributions=True,
    ))
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

import pandas as pd

from ..num import HUNDRED, ONE, ZERO, D, div, mul, to_float
from .nav import NavPoint


@dataclass(frozen=True)
class AllocationSplit:
    invested_pct: Decimal = ZERO
    cash_pct: Decimal = ZERO

    def to_dict(self) -> dict:
        return {"investedPct": to_float(self.invested_pct), "cashPct": to_float(self.cash_pct)}


@dataclass(frozen=True)
class SimulatorInput:
    starting_capital: Decimal
    start_date: date
    monthly_contribution: Decimal = ZERO
    include_monthly_contributions: bool = False


@dataclass(frozen=True)
class BalancePoint:
    day: date
    balance: Decimal


@dataclass
class SimulatorResult:
    series: list[BalancePoint] = field(default_factory=list)
    final_balance: Decimal = ZERO
    total_contributed: Decimal = ZERO
    profit: Decimal = ZERO
    roi_pct: Decimal = ZERO
    max_drawdown_pct: Decimal = ZERO
    max_drawdown_amount: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "series": [{"date": p.day.isoformat(), "balance": to_float(p.balance)} for p in self.series],
            "finalBalance": to_float(self.final_balance),
            "totalContributed": to_float(self.total_contributed),
            "profit": to_float(self.profit),
            "roiPct": to_float(self.roi_pct),
            "maxDrawdownPct": to_float(self.max_drawdown_pct),
            "maxDrawdownAmount": to_float(self.max_drawdown_amount),
        }


def calculate_allocation_split(cash_weight: Optional[Decimal]) -> AllocationSplit:
    """
    Invested vs cash percentages for an allocation's cash weight.

    The weight is clamped to [0, 1]; no allocation gives 0/0.
    """
    if cash_weight is None:
        return AllocationSplit()
    cash_pct = mul(min(max(D(cash_weight), ZERO), ONE), HUNDRED)
    return AllocationSplit(invested_pct=max(ZERO, HUNDRED - cash_pct), cash_pct=cash_pct)


def _nearest_on_or_before(points: Sequence[NavPoint], day: date) -> Optional[NavPoint]:
    found = None
    for point in points:
        if point.day > day:
            break
        found = point
    return found


def contribution_dates(start: date, end: date) -> list[date]:
    """First of each month from start (or the month after, mid-month) through end."""
    first = start.replace(day=1)
    if start.day != 1:
        first = (pd.Timestamp(first) + pd.DateOffset(months=1)).date()
    if first > end:
        return []
    return [ts.date() for ts in pd.date_range(start=first, end=end, freq="MS")]


def _max_drawdown(series: Sequence[BalancePoint]) -> tuple[Decimal, Decimal]:
    """(deepest decline as a percentage <= 0, amount lost at that point)."""
    if len(series) < 2:
        return ZERO, ZERO
    peak = series[0].balance
    worst_pct = ZERO
    worst_amount = ZERO
    for point in series:
        if point.balance > peak:
            peak = point.balance
            continue
        if peak <= 0:
            continue
        drawdown_pct = mul(div(point.balance, peak) - ONE, HUNDRED)
        if drawdown_pct < worst_pct:
            worst_pct = drawdown_pct
            worst_amount = peak - point.balance
    return worst_pct, worst_amount


def run_simulation(points: Sequence[NavPoint], sim: SimulatorInput) -> SimulatorResult:
    """
    Simulate a balance invested along a NAV series.

    The run starts at the last point on or before sim.start_date (the first
    point if the date precedes the series). Negative capital or
    contributions count as 0.

    Returns:
        SimulatorResult; all zeros for an empty series
    """
    ordered = sorted(points, key=lambda p: p.day)
    if not ordered:
        return SimulatorResult()

    capital = max(ZERO, D(sim.starting_capital))
    monthly = max(ZERO, D(sim.monthly_contribution))
    start_point = _nearest_on_or_before(ordered, sim.start_date) or ordered[0]
    start_nav = start_point.nav if not start_point.nav.is_zero() else ONE
    window = [p for p in ordered if p.day >= start_point.day]

    days = contribution_dates(start_point.day, ordered[-1].day) if sim.include_monthly_contributions else []
    buy_ins = [(day, _nearest_on_or_before(ordered, day)) for day in days]

    series = []
    for point in window:
        balance = mul(capital, div(point.nav, start_nav))
        if monthly > 0:
            for day, buy_in in buy_ins:
                if buy_in is None or point.day < day:
                    continue
                buy_in_nav = buy_in.nav if not buy_in.nav.is_zero() else ONE
                balance += mul(div(point.nav, buy_in_nav), monthly)
        series.append(BalancePoint(day=point.day, balance=balance))

    contributed = capital + mul(monthly, D(len(days)))
    final_balance = series[-1].balance
    profit = final_balance - contributed
    roi_pct = mul(div(profit, contributed), HUNDRED) if contributed > 0 else ZERO
    drawdown_pct, drawdown_amount = _max_drawdown(series)

    return SimulatorResult(
        series=series,
        final_balance=final_balance,
        total_contributed=contributed,
        profit=profit,
        roi_pct=roi_pct,
        max_drawdown_pct=drawdown_pct,
        max_drawdown_amount=drawdown_amount,
    )
