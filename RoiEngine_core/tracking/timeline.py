"""
Primary-asset timeline resolution.

Turns an irregular stream of decisions (primary signals or allocation
snapshots) into the holding in effect on every calendar day of a window.
This is a last-write-wins step function: the most recent decision dated on
or before a day applies to that day, and a decision dated exactly on a day
applies from that day on.

The walk is a fold over an immutable cursor so each step can be tested
without I/O.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Generic, Iterable, Optional, Sequence, TypeVar

from utils.calendar_days import to_utc_date
from .assets import (
    AllocationItem,
    ResolvedAsset,
    normalize_allocation_items,
    parse_allocation_assets,
    resolve_asset,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TimelineEvent(Generic[T]):
    """A decision effective from ``effective_date``; ``value`` None means unusable."""
    effective_date: date
    value: Optional[T]
    label: str = ""


@dataclass(frozen=True)
class TimelineCursor(Generic[T]):
    """Fold state: index of the next unapplied event and the holding in effect."""
    position: int = 0
    current: Optional[T] = None


def advance_cursor(
    cursor: TimelineCursor[T],
    day: date,
    events: Sequence[TimelineEvent[T]],
) -> TimelineCursor[T]:
    """
    Apply every event dated on or before ``day`` that the cursor has not seen.

    Unusable events are skipped with a warning and leave the current holding
    unchanged.
    """
    position, current = cursor.position, cursor.current
    while position < len(events) and events[position].effective_date <= day:
        event = events[position]
        if event.value is None:
            logger.warning(
                f"Skipping unmapped decision dated {event.effective_date}: {event.label!r}"
            )
        else:
            current = event.value
        position += 1
    return TimelineCursor(position=position, current=current)


def resolve_step_function(
    dates: Iterable[date],
    events: Iterable[TimelineEvent[T]],
    initial: Optional[T] = None,
) -> dict[date, T]:
    """
    Holding in effect for each day in ``dates``.

    Days before any resolution (no usable event yet and no ``initial``) are
    absent from the result.
    """
    ordered = sorted(events, key=lambda e: e.effective_date)
    cursor: TimelineCursor[T] = TimelineCursor(current=initial)
    timeline: dict[date, T] = {}
    for day in sorted(dates):
        cursor = advance_cursor(cursor, day, ordered)
        if cursor.current is not None:
            timeline[day] = cursor.current
    return timeline


def signal_event(published_at: datetime, raw_signal: Optional[str]) -> TimelineEvent[ResolvedAsset]:
    """Map a raw primary signal to a timeline event (value None if unmapped)."""
    assets = parse_allocation_assets(raw_signal)
    resolved = resolve_asset(assets.primary_asset) if assets else None
    return TimelineEvent(
        effective_date=to_utc_date(published_at),
        value=resolved,
        label=raw_signal or "",
    )


def resolve_timeline(
    dates: Iterable[date],
    signals: Iterable,
    fallback: Optional[ResolvedAsset] = None,
) -> dict[date, ResolvedAsset]:
    """
    Resolve the primary asset in effect on each day.

    Args:
        dates: Calendar days to resolve
        signals: Objects with ``published_at`` and ``signal`` attributes
            (PortfolioDailySignal rows), in any order
        fallback: Asset in effect before the first usable signal

    Returns:
        Dict mapping day to ResolvedAsset (symbol, ticker, source)
    """
    events = [signal_event(s.published_at, s.signal) for s in signals]
    return resolve_step_function(dates, events, initial=fallback)


def resolve_allocation_timeline(
    dates: Iterable[date],
    snapshots: Iterable,
) -> dict[date, tuple[AllocationItem, ...]]:
    """
    Resolve the weighted allocation in effect on each day.

    Args:
        dates: Calendar days to resolve
        snapshots: Objects with ``as_of_date`` and ``items`` attributes
            (AllocationSnapshot rows), in any order

    Returns:
        Dict mapping day to a tuple of AllocationItem
    """
    events = []
    for snapshot in snapshots:
        items = tuple(normalize_allocation_items(snapshot.items))
        events.append(TimelineEvent(
            effective_date=to_utc_date(snapshot.as_of_date),
            value=items or None,
            label=f"allocation {snapshot.as_of_date}",
        ))
    return resolve_step_function(dates, events)


def primary_as_allocation(
    timeline: dict[date, ResolvedAsset],
) -> dict[date, tuple[AllocationItem, ...]]:
    """Express a primary-asset timeline as 100% single-ticker allocations."""
    return {
        day: (AllocationItem(ticker=asset.ticker, weight=Decimal(1)),)
        for day, asset in timeline.items()
    }


def collect_tickers(timeline: dict[date, tuple[AllocationItem, ...]]) -> list[str]:
    """Distinct tickers referenced anywhere in a timeline, sorted."""
    return sorted({item.ticker for items in timeline.values() for item in items})


def transition_days(
    timeline: dict[date, T],
    key: Callable[[T], object] = lambda v: v,
) -> list[date]:
    """Days on which the holding differs from the previous day's."""
    changes = []
    previous = None
    for day in sorted(timeline):
        current = key(timeline[day])
        if previous is not None and current != previous:
            changes.append(day)
        previous = current
    return changes
