"""
Performance statistics for the trade equity curve.

Trade-level figures (win rate, profit factor, R-multiples, hold time) use
closed trades only. Curve-level figures (total return, max drawdown,
Sharpe, Calmar) use the equity points.
"""

import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Optional

from ..num import ONE, ZERO, D, div, safe_div, sqrt, to_float, total
from utils.calendar_days import to_utc_date, utc_today
from .equity import EquityPoint, SignalTrade
from .r_multiple import calculate_expectancy, calculate_r_multiple, price_movement

INFINITY = Decimal("Infinity")


@dataclass
class TradeStats:
    gross_profit: Decimal = ZERO
    gross_loss: Decimal = ZERO
    total_trades: int = 0
    open_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    avg_win: Decimal = ZERO
    avg_loss: Decimal = ZERO
    largest_win: Decimal = ZERO
    largest_loss: Decimal = ZERO
    avg_hold_days: float = 0.0
    r_multiples: list[Decimal] = field(default_factory=list)


@dataclass
class PerformanceStats:
    total_return: Decimal
    max_drawdown: Decimal
    win_rate: Decimal
    profit_factor: Decimal
    avg_r_multiple: Decimal
    expectancy: Decimal
    total_trades: int
    open_trades: int
    avg_hold_days: float
    largest_win: Decimal
    largest_loss: Decimal
    sharpe_ratio: Decimal
    calmar_ratio: Decimal

    def to_dict(self) -> dict:
        """Display values (floats)."""
        return {
            "totalReturn": to_float(self.total_return),
            "maxDrawdown": to_float(self.max_drawdown),
            "winRate": to_float(self.win_rate),
            "profitFactor": to_float(self.profit_factor),
            "avgRMultiple": to_float(self.avg_r_multiple),
            "expectancy": to_float(self.expectancy),
            "totalTrades": self.total_trades,
            "openTrades": self.open_trades,
            "avgHoldDays": self.avg_hold_days,
            "largestWin": to_float(self.largest_win),
            "largestLoss": to_float(self.largest_loss),
            "sharpeRatio": to_float(self.sharpe_ratio),
            "calmarRatio": to_float(self.calmar_ratio),
        }


def calculate_trade_stats(trades: list[SignalTrade]) -> TradeStats:
    """
    Per-unit win/loss figures over closed trades.

    PnL here is the per-unit price movement (no sizing); R-multiples come
    from calculate_r_multiple, so trades without a stop use virtual risk.
    """
    closed = [t for t in trades if t.is_closed]
    stats = TradeStats(total_trades=len(closed), open_trades=len(trades) - len(closed))
    hold_days = 0

    for trade in closed:
        pnl = price_movement(D(trade.entry_price), D(trade.exit_price), trade.direction)
        if pnl > 0:
            stats.gross_profit += pnl
            stats.winning_trades += 1
            stats.largest_win = max(stats.largest_win, pnl)
        else:
            stats.gross_loss += abs(pnl)
            stats.losing_trades += 1
            stats.largest_loss = max(stats.largest_loss, abs(pnl))

        stats.r_multiples.append(calculate_r_multiple(trade))
        held = trade.exit_time - trade.entry_time
        hold_days += math.ceil(held.total_seconds() / 86400)

    if stats.winning_trades:
        stats.avg_win = div(stats.gross_profit, D(stats.winning_trades))
    if stats.losing_trades:
        stats.avg_loss = div(stats.gross_loss, D(stats.losing_trades))
    if closed:
        stats.avg_hold_days = hold_days / len(closed)
    return stats


def calculate_sharpe_ratio(points: list[EquityPoint]) -> Decimal:
    """
    Mean / standard deviation of daily equity returns (0% risk-free rate, not annualized).
    """
    if len(points) < 2:
        return ZERO
    returns = [
        safe_div(current.equity - previous.equity, previous.equity)
        for previous, current in zip(points, points[1:])
    ]
    mean = div(total(returns), D(len(returns)))
    variance = div(total((r - mean) * (r - mean) for r in returns), D(len(returns)))
    std = sqrt(variance)
    return ZERO if std.is_zero() else div(mean, std)


def calculate_performance_stats(
    trades: list[SignalTrade],
    points: list[EquityPoint],
    base_capital: Decimal,
) -> PerformanceStats:
    """
    Summary KPIs for a trade history.

    Args:
        trades: All trades (open ones only count towards open_trades)
        points: Equity curve built from the same trades
        base_capital: Starting equity

    Returns:
        PerformanceStats with total_return and max_drawdown as fractions
    """
    trade_stats = calculate_trade_stats(trades)
    base_capital = D(base_capital)

    final_equity = points[-1].equity if points else base_capital
    total_return = safe_div(final_equity - base_capital, base_capital)
    max_drawdown = max((p.drawdown for p in points), default=ZERO)

    win_rate = (
        safe_div(D(trade_stats.winning_trades), D(trade_stats.total_trades))
        if trade_stats.total_trades else ZERO
    )

    if trade_stats.gross_loss.is_zero():
        profit_factor = INFINITY if trade_stats.gross_profit > 0 else ZERO
    else:
        profit_factor = div(trade_stats.gross_profit, trade_stats.gross_loss)

    r_multiples = trade_stats.r_multiples
    avg_r = safe_div(total(r_multiples), D(len(r_multiples))) if r_multiples else ZERO

    calmar = ZERO if max_drawdown.is_zero() else div(total_return, abs(max_drawdown))

    return PerformanceStats(
        total_return=total_return,
        max_drawdown=max_drawdown,
        win_rate=win_rate,
        profit_factor=profit_factor,
        avg_r_multiple=avg_r,
        expectancy=calculate_expectancy(r_multiples),
        total_trades=trade_stats.total_trades,
        open_trades=trade_stats.open_trades,
        avg_hold_days=trade_stats.avg_hold_days,
        largest_win=trade_stats.largest_win,
        largest_loss=trade_stats.largest_loss,
        sharpe_ratio=calculate_sharpe_ratio(points),
        calmar_ratio=calmar,
    )


def period_start(time_range: str, today: date) -> Optional[date]:
    """First day of a 'ytd' / '1y' / '90d' range; None for 'all'."""
    if time_range == "ytd":
        return date(today.year, 1, 1)
    if time_range == "1y":
        return today - timedelta(days=365)
    if time_range == "90d":
        return today - timedelta(days=90)
    if time_range == "all":
        return None
    raise ValueError(f"Unknown time range: {time_range!r}")


def calculate_time_range_stats(
    trades: list[SignalTrade],
    points: list[EquityPoint],
    base_capital: Decimal,
    time_range: str,
    today_fn: Callable[[], date] = utc_today,
) -> PerformanceStats:
    """
    Stats restricted to trades entered and equity points within a range.

    The starting equity becomes the equity on the first point in range.
    """
    start = period_start(time_range, today_fn())
    if start is None:
        return calculate_performance_stats(trades, points, base_capital)

    in_range_trades = [t for t in trades if to_utc_date(t.entry_time) >= start]
    in_range_points = [p for p in points if p.day >= start]
    adjusted_base = in_range_points[0].equity if in_range_points else D(base_capital)
    return calculate_performance_stats(in_range_trades, in_range_points, adjusted_base)
