"""
Portfolio asset registry and signal parsing.

Maps the asset names used in published signals and allocation snapshots to
the price tickers the cache stores, and derives the portfolio key that a
tier/category signal scope feeds.
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from ..models import PriceSource
from ..num import D

logger = logging.getLogger(__name__)

PORTFOLIO_ASSETS = (
    "BTC",
    "ETH",
    "SOL",
    "XRP",
    "DOGE",
    "SUI",
    "BNB",
    "TRX",
    "HYPEH",
    "LINK",
    "XAUTUSD",
    "CASH",
)

CASH_SYMBOL = "CASH"

# Asset name -> price ticker. None means no supplier carries the asset.
ASSET_TICKERS: dict[str, Optional[str]] = {
    "BTC": "BTC",
    "ETH": "ETH",
    "SOL": "SOL",
    "XRP": "XRP",
    "DOGE": "DOGE",
    "SUI": "SUI",
    "BNB": "BNB",
    "TRX": "TRX",
    "HYPEH": None,
    "LINK": "LINK",
    "XAUTUSD": "XAUT",
    "CASH": "CASH",
}

SIGNAL_TIERS = ("T1", "T2", "T3")
SIGNAL_CATEGORIES = ("majors", "memecoins")


@dataclass(frozen=True)
class ResolvedAsset:
    """An asset name with the ticker and source its prices come from."""
    symbol: str
    ticker: str
    source: str


@dataclass(frozen=True)
class AllocationAssets:
    primary_asset: str
    secondary_asset: str
    tertiary_asset: str


@dataclass(frozen=True)
class AllocationItem:
    """One weighted constituent of an allocation, keyed by price ticker."""
    ticker: str
    weight: Decimal


@dataclass(frozen=True)
class SignalScope:
    tier: str
    category: Optional[str] = None

    @property
    def portfolio_key(self) -> str:
        key = self.tier.lower()
        if self.category:
            key = f"{key}-{self.category.lower()}"
        return key


def resolve_asset(symbol: Optional[str]) -> Optional[ResolvedAsset]:
    """
    Look up the price ticker for an asset name.

    Returns None for unknown names and for known assets without a supplier
    mapping.
    """
    if not symbol:
        return None
    normalized = symbol.strip().upper()
    ticker = ASSET_TICKERS.get(normalized)
    if ticker is None:
        return None
    source = PriceSource.CASH if normalized == CASH_SYMBOL else PriceSource.MARKET
    return ResolvedAsset(symbol=normalized, ticker=ticker, source=source)


def ticker_for_asset(asset: str) -> str:
    """
    Price ticker for an allocation item.

    Unregistered assets keep their upper-cased name so the supplier is asked
    for them and fails loudly if it does not carry them.
    """
    normalized = asset.strip().upper()
    return ASSET_TICKERS.get(normalized) or normalized


def source_for_ticker(ticker: str) -> str:
    return PriceSource.for_ticker(ticker)


def parse_allocation_assets(signal: Optional[str]) -> Optional[AllocationAssets]:
    """
    Parse a raw signal into primary/secondary/tertiary assets.

    Accepts JSON ({"primaryAsset": ..., "secondaryAsset": ..., "tertiaryAsset": ...})
    or free text, in which case the first three known asset names, in order
    of appearance, are used.

    Returns None if fewer than three known assets can be found.
    """
    if not signal:
        return None

    try:
        parsed = json.loads(signal)
    except (TypeError, ValueError):
        parsed = None

    if isinstance(parsed, dict):
        picks = [parsed.get("primaryAsset"), parsed.get("secondaryAsset"), parsed.get("tertiaryAsset")]
        if all(isinstance(p, str) and p in PORTFOLIO_ASSETS for p in picks):
            return AllocationAssets(*picks)

    upper_signal = signal.upper()
    found = sorted(
        (upper_signal.find(asset), asset)
        for asset in PORTFOLIO_ASSETS
        if upper_signal.find(asset) >= 0
    )
    ordered = [asset for _, asset in found]
    if len(ordered) >= 3:
        return AllocationAssets(*ordered[:3])
    return None


def format_allocation_signal(primary: str, secondary: str, tertiary: str) -> str:
    return json.dumps({
        "primaryAsset": primary,
        "secondaryAsset": secondary,
        "tertiaryAsset": tertiary,
    })


def parse_portfolio_key(portfolio_key: str) -> Optional[SignalScope]:
    """
    Signal scope fed by a portfolio key ('t1', 't2', 't3-majors', ...).

    Returns None for keys that are not tier-based (pure allocation portfolios).
    """
    tier, _, category = portfolio_key.strip().lower().partition("-")
    tier = tier.upper()
    if tier not in SIGNAL_TIERS:
        return None
    if category and category not in SIGNAL_CATEGORIES:
        return None
    return SignalScope(tier=tier, category=category or None)


def normalize_allocation_items(items: list) -> list[AllocationItem]:
    """
    Convert stored JSON items to AllocationItem, merging duplicate tickers.

    Items with an empty asset or a non-numeric weight are dropped with a warning.
    """
    weights: dict[str, Decimal] = {}
    for item in items or []:
        asset = str((item or {}).get("asset") or "").strip()
        if not asset:
            continue
        try:
            weight = D(item.get("weight", 0))
        except (InvalidOperation, TypeError, ValueError):
            logger.warning(f"Dropping allocation item with invalid weight: {item}")
            continue
        ticker = ticker_for_asset(asset)
        weights[ticker] = weights.get(ticker, Decimal(0)) + weight
    return [AllocationItem(ticker=t, weight=w) for t, w in weights.items()]
