"""
R-multiple calculations for signal trades.

R = (exit - entry) / (entry - stop), both legs signed by direction, so a
trade that hits its stop is exactly -1R. Trades without a usable stop are
measured against a virtual risk of ``riskPct`` percent of the entry price
(1% by default).
"""

from decimal import Decimal
from typing import Optional

from ..config import DEFAULT_RISK_PCT
from ..num import HUNDRED, ONE, ZERO, D, div, safe_div, total


class Directions:
    LONG = "long"
    SHORT = "short"

    @classmethod
    def all(cls) -> list[str]:
        return [cls.LONG, cls.SHORT]


def price_movement(entry_price: Decimal, exit_price: Decimal, direction: str) -> Decimal:
    """Per-unit profit: positive when the trade went the right way."""
    if direction == Directions.SHORT:
        return entry_price - exit_price
    return exit_price - entry_price


def risk_per_unit(entry_price: Decimal, stop_loss: Optional[Decimal], direction: str) -> Decimal:
    """Distance to the stop, signed by direction (0 without a stop)."""
    if stop_loss is None or stop_loss.is_zero():
        return ZERO
    if direction == Directions.SHORT:
        return stop_loss - entry_price
    return entry_price - stop_loss


def _r_from_risk_pct(movement: Decimal, entry_price: Decimal, risk_pct: Optional[Decimal]) -> Decimal:
    percentage = risk_pct if risk_pct is not None else D(DEFAULT_RISK_PCT)
    virtual_risk = div(entry_price * percentage, HUNDRED)
    if virtual_risk.is_zero():
        return ZERO
    return safe_div(movement, virtual_risk)


def calculate_r_multiple(trade) -> Decimal:
    """
    R-multiple of a closed trade.

    Args:
        trade: Object with entry_price, exit_price, direction and optional
            stop_loss, risk_pct (SignalTrade)

    Returns:
        R-multiple as Decimal; 0 for a zero entry price or a zero virtual risk

    Example:
        long 40000 -> 41800, stop 38000  =>  1800 / 2000 = 0.9
    """
    entry_price = D(trade.entry_price)
    if entry_price.is_zero() or trade.exit_price is None:
        return ZERO

    exit_price = D(trade.exit_price)
    stop_loss = D(trade.stop_loss) if trade.stop_loss is not None else None
    risk_pct = D(trade.risk_pct) if trade.risk_pct is not None else None

    movement = price_movement(entry_price, exit_price, trade.direction)
    risk = risk_per_unit(entry_price, stop_loss, trade.direction)
    if risk.is_zero():
        return _r_from_risk_pct(movement, entry_price, risk_pct)
    return safe_div(movement, risk)


def calculate_r_multiples(trades: list) -> list[Decimal]:
    return [calculate_r_multiple(t) for t in trades]


def calculate_average_r_multiple(trades: list) -> Decimal:
    if not trades:
        return ZERO
    return safe_div(total(calculate_r_multiples(trades)), D(len(trades)))


def calculate_expectancy(r_multiples: list[Decimal]) -> Decimal:
    """
    Expected R per trade: win_rate * avg_win_R - loss_rate * |avg_loss_R|.

    Break-even trades (R == 0) count as losses.
    """
    if not r_multiples:
        return ZERO
    wins = [r for r in r_multiples if r > 0]
    losses = [r for r in r_multiples if r <= 0]

    win_rate = safe_div(D(len(wins)), D(len(r_multiples)))
    loss_rate = ONE - win_rate
    avg_win = safe_div(total(wins), D(len(wins))) if wins else ZERO
    avg_loss = safe_div(total(losses), D(len(losses))) if losses else ZERO
    return win_rate * avg_win - loss_rate * abs(avg_loss)


def validate_r_multiple(trade) -> tuple[bool, Optional[str]]:
    """
    Check that a trade's prices allow a meaningful R-multiple.

    Returns:
        (is_valid, error message or None)
    """
    if D(trade.entry_price).is_zero():
        return False, "Entry price cannot be zero"
    if trade.exit_price is not None and D(trade.exit_price).is_zero():
        return False, "Exit price cannot be zero"
    if trade.stop_loss is not None:
        stop_loss = D(trade.stop_loss)
        entry_price = D(trade.entry_price)
        if stop_loss.is_zero():
            return False, "Stop loss cannot be zero"
        if trade.direction == Directions.LONG and stop_loss >= entry_price:
            return False, "Stop loss must be below entry price for long trades"
        if trade.direction == Directions.SHORT and stop_loss <= entry_price:
            return False, "Stop loss must be above entry price for short trades"
    return True, None
