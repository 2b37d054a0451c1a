"""
Equity curve simulation from signal trades.

Each closed trade is sized when it is entered (from the equity at that
point), and its PnL net of fees and slippage is booked on the day it exits.
Open trades are carried at zero unrealized PnL.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional

from ..config import (
    DEFAULT_BASE_CAPITAL_USD,
    DEFAULT_FEE_BPS,
    DEFAULT_SLIPPAGE_BPS,
    FIXED_FRACTION,
)
from ..num import HUNDRED, ZERO, D, calculate_costs, div, safe_div, to_float
from utils.calendar_days import list_calendar_days, to_utc_date, utc_today
from .r_multiple import Directions, risk_per_unit

logger = logging.getLogger(__name__)


class PositionModels:
    RISK_PCT = "risk_pct"
    FIXED_FRACTION = "fixed_fraction"

    @classmethod
    def all(cls) -> list[str]:
        return [cls.RISK_PCT, cls.FIXED_FRACTION]


class TradeStatus:
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class SignalTrade:
    """
    One published trade signal.

    risk_pct is in percent units (1 means 1% of equity at risk).
    """
    id: str
    symbol: str
    direction: str
    entry_time: datetime
    entry_price: Decimal
    status: str = TradeStatus.OPEN
    stop_loss: Optional[Decimal] = None
    take_profit: Optional[Decimal] = None
    risk_pct: Optional[Decimal] = None
    exit_time: Optional[datetime] = None
    exit_price: Optional[Decimal] = None
    market: str = "crypto"
    tags: list[str] = field(default_factory=list)

    @property
    def is_closed(self) -> bool:
        return (
            self.status == TradeStatus.CLOSED
            and self.exit_time is not None
            and self.exit_price is not None
        )


@dataclass
class PortfolioSettings:
    base_capital_usd: Decimal = D(DEFAULT_BASE_CAPITAL_USD)
    position_model: str = PositionModels.RISK_PCT
    fee_bps: int = DEFAULT_FEE_BPS
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS


@dataclass(frozen=True)
class PositionSize:
    size: Decimal
    risk_amount: Decimal


@dataclass(frozen=True)
class EquityPoint:
    day: date
    equity: Decimal
    drawdown: Decimal  # fraction below running peak, >= 0
    trades: int        # closed trades realized so far


def calculate_position_size(
    trade: SignalTrade,
    settings: PortfolioSettings,
    current_equity: Decimal,
) -> PositionSize:
    """
    Size a position.

    risk_pct model with a stop and risk_pct: size = equity * riskPct% / |entry - stop|.
    Otherwise fixed fraction: 1% of equity / entry price.
    """
    entry_price = D(trade.entry_price)
    if (
        settings.position_model == PositionModels.RISK_PCT
        and trade.stop_loss is not None
        and trade.risk_pct is not None
    ):
        risk_amount = div(current_equity * D(trade.risk_pct), HUNDRED)
        price_risk = abs(risk_per_unit(entry_price, D(trade.stop_loss), trade.direction))
        return PositionSize(size=safe_div(risk_amount, price_risk), risk_amount=risk_amount)

    fraction = D(FIXED_FRACTION)
    return PositionSize(
        size=safe_div(current_equity * fraction, entry_price),
        risk_amount=current_equity * fraction,
    )


def calculate_trade_pnl(
    trade: SignalTrade,
    position: PositionSize,
    settings: PortfolioSettings,
) -> Decimal:
    """
    Realized PnL net of costs; 0 for open trades.

    Fee and slippage basis points are charged on both entry and exit notional.
    """
    if not trade.is_closed:
        return ZERO

    entry_value = position.size * D(trade.entry_price)
    exit_value = position.size * D(trade.exit_price)

    if trade.direction == Directions.SHORT:
        gross = entry_value - exit_value
    else:
        gross = exit_value - entry_value

    costs = (
        calculate_costs(entry_value, settings.fee_bps, settings.slippage_bps)
        + calculate_costs(exit_value, settings.fee_bps, settings.slippage_bps)
    )
    return gross - costs


def build_equity_curve(
    trades: list[SignalTrade],
    settings: PortfolioSettings,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    today_fn: Callable[[], date] = utc_today,
) -> list[EquityPoint]:
    """
    Day-by-day equity curve.

    Args:
        trades: Signal trades in any order
        settings: Capital, sizing model and cost model
        start_date: First day (default: first entry day)
        end_date: Last day (default: today, UTC)

    Returns:
        One EquityPoint per calendar day; empty if no trade enters in range
    """
    in_range = sorted(
        (
            t for t in trades
            if (start_date is None or to_utc_date(t.entry_time) >= start_date)
            and (end_date is None or to_utc_date(t.entry_time) <= end_date)
        ),
        key=lambda t: t.entry_time,
    )
    if not in_range:
        return []

    first_day = start_date or to_utc_date(in_range[0].entry_time)
    last_day = end_date or today_fn()

    entries: dict[date, list[SignalTrade]] = {}
    for trade in in_range:
        if trade.is_closed:
            entries.setdefault(to_utc_date(trade.entry_time), []).append(trade)

    equity = D(settings.base_capital_usd)
    peak = equity
    realized = 0
    # exit day -> PnL of positions sized at entry
    pending: dict[date, list[Decimal]] = {}
    points: list[EquityPoint] = []

    for day in list_calendar_days(first_day, last_day):
        for trade in entries.get(day, []):
            position = calculate_position_size(trade, settings, equity)
            pnl = calculate_trade_pnl(trade, position, settings)
            exit_day = max(to_utc_date(trade.exit_time), day)
            pending.setdefault(exit_day, []).append(pnl)

        for pnl in pending.pop(day, []):
            equity += pnl
            realized += 1
            if equity > peak:
                peak = equity

        points.append(EquityPoint(
            day=day,
            equity=equity,
            drawdown=safe_div(peak - equity, peak),
            trades=realized,
        ))

    if pending:
        logger.debug(f"{sum(len(v) for v in pending.values())} trade(s) exit after {last_day}")
    return points


def get_current_equity(
    trades: list[SignalTrade],
    settings: PortfolioSettings,
    today_fn: Callable[[], date] = utc_today,
) -> Decimal:
    curve = build_equity_curve(trades, settings, today_fn=today_fn)
    return curve[-1].equity if curve else D(settings.base_capital_usd)


def calculate_unrealized_pnl(
    open_trades: list[SignalTrade],
    settings: PortfolioSettings,
    current_equity: Decimal,
    current_prices: Optional[dict[str, Decimal]] = None,
) -> Decimal:
    """
    Mark-to-market PnL of open positions, before exit costs.

    Positions are sized against current_equity. Trades that are closed or
    have no price in current_prices (keyed by symbol) contribute 0, so the
    result is 0 when no prices are supplied.
    """
    prices = current_prices or {}
    unrealized = ZERO
    for trade in open_trades:
        price = prices.get(trade.symbol)
        if trade.is_closed or price is None:
            continue
        position = calculate_position_size(trade, settings, current_equity)
        move = D(price) - D(trade.entry_price)
        if trade.direction == Directions.SHORT:
            move = -move
        unrealized += position.size * move
    return unrealized


def equity_point_to_float(point: EquityPoint) -> dict:
    """Display form of an EquityPoint for charts."""
    return {
        "date": point.day.isoformat(),
        "equity": to_float(point.equity),
        "drawdown": to_float(point.drawdown),
        "trades": point.trades,
    }
