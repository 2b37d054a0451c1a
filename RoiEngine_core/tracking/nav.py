"""
NAV series construction.

Walks a resolved allocation timeline day by day, prices every constituent
with forward-filled closes and compounds the daily returns into a NAV that
starts at 100 on the first priceable day.

    NAV(t) = NAV(t-1) * (1 + sum_i w_i * (close_i(t) / close_i(t-1) - 1))

A primary-only portfolio is the single-item case with weight 1. Returns are
priced off the ticker in effect on day t for both closes, so a primary
switch on day t uses the new ticker's own prior close.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from ..config import MISSING_DAY_LOG_SAMPLE, NAV_BASE
from ..num import ONE, ZERO, D, div, mul
from .assets import AllocationItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NavPoint:
    day: date
    nav: Decimal
    daily_return: Decimal


@dataclass
class FilledPrices:
    """Forward-filled closes per ticker plus the days that had no direct quote."""
    closes: dict[str, dict[date, Decimal]] = field(default_factory=dict)
    filled_days: dict[str, list[date]] = field(default_factory=dict)

    def get(self, ticker: str, day: Optional[date]) -> Optional[Decimal]:
        if day is None:
            return None
        return self.closes.get(ticker, {}).get(day)


@dataclass(frozen=True)
class NavCursor:
    """Fold state: NAV so far and the last day a point was emitted (None before inception)."""
    nav: Optional[Decimal] = None
    last_day: Optional[date] = None

    @property
    def initialized(self) -> bool:
        return self.nav is not None


def forward_fill_prices(
    prices_by_ticker: dict[str, dict[date, Decimal]],
    dates: Iterable[date],
) -> FilledPrices:
    """
    Carry the most recent known close onto days without a quote.

    Closes dated before the first requested day seed the fill. Days before a
    ticker's first close stay empty.
    """
    days = sorted(dates)
    filled = FilledPrices()

    for ticker, raw in prices_by_ticker.items():
        entries = sorted(raw.items())
        index = 0
        last_close: Optional[Decimal] = None
        ticker_closes: dict[date, Decimal] = {}
        ticker_filled: list[date] = []

        for day in days:
            quoted = False
            while index < len(entries) and entries[index][0] <= day:
                last_close = entries[index][1]
                quoted = entries[index][0] == day
                index += 1
            if last_close is not None:
                ticker_closes[day] = last_close
                if not quoted:
                    ticker_filled.append(day)

        filled.closes[ticker] = ticker_closes
        filled.filled_days[ticker] = ticker_filled

    return filled


def log_forward_fills(filled: FilledPrices, sample_size: int = MISSING_DAY_LOG_SAMPLE) -> None:
    for ticker, days in filled.filled_days.items():
        if days:
            logger.info(
                f"Missing day(s) for {ticker}, forward-filled: "
                f"{[d.isoformat() for d in days[:sample_size]]} "
                f"({len(days)} total)"
            )


def step_nav(
    cursor: NavCursor,
    day: date,
    items: Optional[tuple[AllocationItem, ...]],
    prices: FilledPrices,
) -> tuple[NavCursor, Optional[NavPoint], list[str]]:
    """
    Advance the NAV fold by one day.

    Returns:
        (new cursor, emitted point or None, tickers whose contribution was voided)
    """
    if not items:
        return cursor, None, []

    if not cursor.initialized:
        if any(prices.get(item.ticker, day) is not None for item in items):
            nav = D(NAV_BASE)
            return NavCursor(nav=nav, last_day=day), NavPoint(day, nav, ZERO), []
        return cursor, None, []

    daily_return = ZERO
    voided = []
    for item in items:
        today = prices.get(item.ticker, day)
        previous = prices.get(item.ticker, cursor.last_day)
        if today is None or previous is None or previous.is_zero():
            voided.append(item.ticker)
            continue
        daily_return += mul(item.weight, div(today, previous) - ONE)

    nav = mul(cursor.nav, ONE + daily_return)
    return NavCursor(nav=nav, last_day=day), NavPoint(day, nav, daily_return), voided


def build_nav(
    dates: Iterable[date],
    timeline: dict[date, tuple[AllocationItem, ...]],
    prices_by_ticker: dict[str, dict[date, Decimal]],
) -> list[NavPoint]:
    """
    Build the NAV series for a resolved timeline.

    Args:
        dates: Calendar days of the window (any order)
        timeline: Allocation in effect per day (see timeline.py)
        prices_by_ticker: Raw cached closes {ticker: {day: close}}

    Returns:
        NavPoints ordered by day; empty if no day ever had a resolvable price.
        A pure function of its inputs.
    """
    days = sorted(dates)
    prices = forward_fill_prices(prices_by_ticker, days)
    log_forward_fills(prices)

    cursor = NavCursor()
    series: list[NavPoint] = []
    voided_days: dict[str, list[date]] = {}

    for day in days:
        cursor, point, voided = step_nav(cursor, day, timeline.get(day), prices)
        if point is not None:
            series.append(point)
        for ticker in voided:
            voided_days.setdefault(ticker, []).append(day)

    for ticker, days_voided in voided_days.items():
        logger.warning(
            f"No close for {ticker} on {len(days_voided)} day(s), contribution set to 0: "
            f"{[d.isoformat() for d in days_voided[:MISSING_DAY_LOG_SAMPLE]]}"
        )

    return series
