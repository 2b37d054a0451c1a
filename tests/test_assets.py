"""
Test suite for the portfolio asset registry and signal parsing.
"""

from decimal import Decimal

from RoiEngine_core.models import PriceSource
from RoiEngine_core.tracking.assets import (
    AllocationAssets,
    AllocationItem,
    SignalScope,
    format_allocation_signal,
    normalize_allocation_items,
    parse_allocation_assets,
    parse_portfolio_key,
    resolve_asset,
    ticker_for_asset,
)


def test_resolve_asset_maps_known_symbols():
    btc = resolve_asset("btc")
    assert btc.symbol == "BTC"
    assert btc.ticker == "BTC"
    assert btc.source == PriceSource.MARKET

    gold = resolve_asset("XAUTUSD")
    assert gold.ticker == "XAUT"

    cash = resolve_asset("CASH")
    assert cash.source == PriceSource.CASH


def test_resolve_asset_unmapped_and_unknown():
    """HYPEH is a known asset without a price supplier."""
    assert resolve_asset("HYPEH") is None
    assert resolve_asset("NOTACOIN") is None
    assert resolve_asset(None) is None
    assert resolve_asset("") is None


def test_parse_allocation_assets_json():
    raw = format_allocation_signal("ETH", "BTC", "CASH")
    assert parse_allocation_assets(raw) == AllocationAssets("ETH", "BTC", "CASH")


def test_parse_allocation_assets_free_text_uses_order_of_appearance():
    raw = "Today: SOL first, then BTC, with XAUTUSD as hedge"
    assert parse_allocation_assets(raw) == AllocationAssets("SOL", "BTC", "XAUTUSD")


def test_parse_allocation_assets_needs_three_assets():
    assert parse_allocation_assets("BTC only") is None
    assert parse_allocation_assets("") is None
    assert parse_allocation_assets(None) is None


def test_parse_allocation_assets_rejects_unknown_json_assets():
    """Invalid JSON picks fall back to the text scan."""
    raw = '{"primaryAsset": "FOO", "secondaryAsset": "BTC", "tertiaryAsset": "ETH"}'
    assert parse_allocation_assets(raw) is None


def test_parse_portfolio_key():
    assert parse_portfolio_key("t1") == SignalScope(tier="T1")
    assert parse_portfolio_key("t3-majors") == SignalScope(tier="T3", category="majors")
    assert parse_portfolio_key("t3-altcoins") is None
    assert parse_portfolio_key("core-basket") is None


def test_signal_scope_portfolio_key():
    assert SignalScope(tier="T2").portfolio_key == "t2"
    assert SignalScope(tier="T3", category="memecoins").portfolio_key == "t3-memecoins"


def test_ticker_for_asset_keeps_unregistered_names():
    assert ticker_for_asset(" xautusd ") == "XAUT"
    assert ticker_for_asset("pepe") == "PEPE"


def test_normalize_allocation_items_merges_and_drops():
    items = [
        {"asset": "BTC", "weight": "0.4"},
        {"asset": "btc", "weight": 0.1},
        {"asset": "ETH", "weight": "abc"},
        {"asset": "", "weight": "0.2"},
        {"asset": "CASH", "weight": "0.5"},
    ]
    assert normalize_allocation_items(items) == [
        AllocationItem(ticker="BTC", weight=Decimal("0.5")),
        AllocationItem(ticker="CASH", weight=Decimal("0.5")),
    ]
