"""
Test suite for R-multiple calculations.
"""

from datetime import datetime
from decimal import Decimal

from RoiEngine_core.perf.equity import SignalTrade, TradeStatus
from RoiEngine_core.perf.r_multiple import (
    Directions,
    calculate_average_r_multiple,
    calculate_expectancy,
    calculate_r_multiple,
    validate_r_multiple,
)

D = Decimal


def trade(direction, entry, exit_price, stop=None, risk_pct=None):
    return SignalTrade(
        id="t",
        symbol="BTC",
        direction=direction,
        entry_time=datetime(2026, 1, 1),
        entry_price=D(entry),
        stop_loss=D(stop) if stop is not None else None,
        risk_pct=D(risk_pct) if risk_pct is not None else None,
        exit_time=datetime(2026, 1, 2),
        exit_price=D(exit_price),
        status=TradeStatus.CLOSED,
    )


def test_long_winner():
    # (41800 - 40000) / (40000 - 38000)
    assert calculate_r_multiple(trade(Directions.LONG, 40000, 41800, stop=38000)) == D("0.9")


def test_short_loser_beyond_stop():
    # (2500 - 2620) / (2600 - 2500)
    assert calculate_r_multiple(trade(Directions.SHORT, 2500, 2620, stop=2600)) == D("-1.2")


def test_stopped_out_is_minus_one():
    assert calculate_r_multiple(trade(Directions.LONG, 100, 90, stop=90)) == D(-1)


def test_virtual_risk_without_stop():
    # default 1% of entry as risk
    assert calculate_r_multiple(trade(Directions.LONG, 100, 102)) == D(2)
    assert calculate_r_multiple(trade(Directions.LONG, 100, 102, risk_pct=2)) == D(1)
    assert calculate_r_multiple(trade(Directions.SHORT, 100, 103, stop=0)) == D(-3)


def test_zero_entry_or_open_trade_gives_zero():
    assert calculate_r_multiple(trade(Directions.LONG, 0, 10, stop=5)) == D(0)
    open_trade = trade(Directions.LONG, 100, 110)
    open_trade.exit_price = None
    assert calculate_r_multiple(open_trade) == D(0)


def test_average_and_expectancy():
    trades = [
        trade(Directions.LONG, 100, 120, stop=90),  # 2R
        trade(Directions.LONG, 100, 90, stop=90),   # -1R
    ]
    assert calculate_average_r_multiple(trades) == D("0.5")
    assert calculate_expectancy([D(2), D(-1)]) == D("0.5")
    assert calculate_expectancy([]) == D(0)
    assert calculate_average_r_multiple([]) == D(0)


def test_validate_r_multiple():
    assert validate_r_multiple(trade(Directions.LONG, 100, 110, stop=90)) == (True, None)

    valid, message = validate_r_multiple(trade(Directions.LONG, 100, 110, stop=105))
    assert not valid
    assert "below entry" in message

    valid, message = validate_r_multiple(trade(Directions.SHORT, 100, 90, stop=95))
    assert not valid
    assert "above entry" in message

    valid, message = validate_r_multiple(trade(Directions.LONG, 0, 110))
    assert not valid


def test_two_long_trades_exact_decimal():
    btc = trade(Directions.LONG, 40000, 41800, stop=38000)
    eth = trade(Directions.LONG, 2500, 2380, stop=2400)
    assert [calculate_r_multiple(t) for t in (btc, eth)] == [D("0.9"), D("-1.2")]
    assert str(calculate_r_multiple(eth)) == "-1.2"
