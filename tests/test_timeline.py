"""
Test suite for the holding timeline resolver.

The resolver is a last-write-wins step function over dated decisions.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

from RoiEngine_core.tracking.assets import AllocationItem, ResolvedAsset, format_allocation_signal
from RoiEngine_core.tracking.timeline import (
    TimelineCursor,
    TimelineEvent,
    advance_cursor,
    collect_tickers,
    primary_as_allocation,
    resolve_allocation_timeline,
    resolve_step_function,
    resolve_timeline,
    transition_days,
)


def days(start: date, count: int) -> list[date]:
    return [start + timedelta(days=i) for i in range(count)]


def signal(published_at: datetime, primary: str, secondary: str = "ETH", tertiary: str = "CASH"):
    return SimpleNamespace(
        published_at=published_at,
        signal=format_allocation_signal(primary, secondary, tertiary),
    )


def test_signals_switch_on_their_publish_day():
    """A on day 1 and B on day 5: A for days 1-4, B for days 5-7."""
    window = days(date(2026, 1, 1), 7)
    signals = [
        signal(datetime(2026, 1, 5, 8, 0), "SOL"),
        signal(datetime(2026, 1, 1, 8, 0), "BTC"),
    ]

    timeline = resolve_timeline(window, signals)

    assert [timeline[d].symbol for d in window] == ["BTC"] * 4 + ["SOL"] * 3


def test_days_before_first_signal_are_absent():
    window = days(date(2026, 1, 1), 5)
    timeline = resolve_timeline(window, [signal(datetime(2026, 1, 3), "BTC")])
    assert sorted(timeline) == window[2:]


def test_fallback_applies_before_first_signal():
    window = days(date(2026, 1, 1), 4)
    fallback = ResolvedAsset(symbol="ETH", ticker="ETH", source="market")

    timeline = resolve_timeline(window, [signal(datetime(2026, 1, 3), "BTC")], fallback=fallback)

    assert [timeline[d].ticker for d in window] == ["ETH", "ETH", "BTC", "BTC"]


def test_unmapped_signal_is_skipped():
    """HYPEH has no price supplier; the previous holding stays in effect."""
    window = days(date(2026, 1, 1), 4)
    signals = [
        signal(datetime(2026, 1, 1), "BTC"),
        signal(datetime(2026, 1, 2), "HYPEH"),
        SimpleNamespace(published_at=datetime(2026, 1, 3), signal="garbage"),
    ]

    timeline = resolve_timeline(window, signals)

    assert [timeline[d].ticker for d in window] == ["BTC"] * 4


def test_later_signal_on_same_day_wins():
    window = [date(2026, 1, 1)]
    signals = [
        signal(datetime(2026, 1, 1, 8), "BTC"),
        signal(datetime(2026, 1, 1, 20), "ETH", secondary="BTC"),
    ]
    assert resolve_timeline(window, signals)[date(2026, 1, 1)].ticker == "ETH"


def test_advance_cursor_is_pure():
    events = [
        TimelineEvent(effective_date=date(2026, 1, 1), value="A"),
        TimelineEvent(effective_date=date(2026, 1, 3), value="B"),
    ]
    start = TimelineCursor()

    first = advance_cursor(start, date(2026, 1, 2), events)
    again = advance_cursor(start, date(2026, 1, 2), events)

    assert first == again == TimelineCursor(position=1, current="A")
    assert start == TimelineCursor()
    assert advance_cursor(first, date(2026, 1, 3), events) == TimelineCursor(position=2, current="B")


def test_resolve_step_function_with_initial_value():
    timeline = resolve_step_function(
        days(date(2026, 1, 1), 3),
        [TimelineEvent(effective_date=date(2026, 1, 2), value=2)],
        initial=1,
    )
    assert list(timeline.values()) == [1, 2, 2]


def test_allocation_timeline_steps_between_snapshots():
    window = days(date(2026, 2, 1), 4)
    snapshots = [
        SimpleNamespace(as_of_date=date(2026, 2, 3), items=[{"asset": "ETH", "weight": "1"}]),
        SimpleNamespace(
            as_of_date=date(2026, 2, 1),
            items=[{"asset": "BTC", "weight": "0.6"}, {"asset": "CASH", "weight": "0.4"}],
        ),
    ]

    timeline = resolve_allocation_timeline(window, snapshots)

    assert timeline[date(2026, 2, 2)] == (
        AllocationItem("BTC", Decimal("0.6")),
        AllocationItem("CASH", Decimal("0.4")),
    )
    assert timeline[date(2026, 2, 3)] == (AllocationItem("ETH", Decimal("1")),)
    assert collect_tickers(timeline) == ["BTC", "CASH", "ETH"]
    assert transition_days(timeline) == [date(2026, 2, 3)]


def test_primary_as_allocation_is_full_weight():
    btc = ResolvedAsset(symbol="BTC", ticker="BTC", source="market")
    allocation = primary_as_allocation({date(2026, 1, 1): btc})
    assert allocation == {date(2026, 1, 1): (AllocationItem("BTC", Decimal(1)),)}
