"""
Batch ROI recompute job.

One run takes the job lock, walks every dirty portfolio in sequence and,
for each one:

    SELECTED -> RESOLVING_PRIMARY -> INGESTING_PRICES -> BUILDING_NAV -> PERSISTING -> DONE

Any step can end in ERROR. Terminal errors (nothing to resolve) clear the
dirty flag; other errors leave it set so the next run retries. A failing
portfolio never stops the loop, and the lock is always released.
"""

import logging
import os
import socket
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..config import PRICE_LOOKBACK_DAYS
from ..data_manager import PriceCacheManager, PriceSupplier
from ..errors import EmptyNavError, PersistenceError, RoiEngineError, UnresolvedPrimaryError
from utils.calendar_days import list_calendar_days, to_utc_date, utc_today
from .assets import AllocationItem, ResolvedAsset, parse_portfolio_key, resolve_asset, source_for_ticker
from .lock import JobLockManager
from .metrics import compute_metrics
from .models import PrimaryModes, RoiDashboardSnapshot, SnapshotDiagnostics
from .nav import build_nav
from .timeline import (
    collect_tickers,
    primary_as_allocation,
    resolve_allocation_timeline,
    resolve_timeline,
    transition_days,
)
from .tracker import RoiTracker

logger = logging.getLogger(__name__)


class PortfolioJobState(str, Enum):
    SELECTED = "SELECTED"
    RESOLVING_PRIMARY = "RESOLVING_PRIMARY"
    INGESTING_PRICES = "INGESTING_PRICES"
    BUILDING_NAV = "BUILDING_NAV"
    PERSISTING = "PERSISTING"
    DONE = "DONE"
    ERROR = "ERROR"


@dataclass
class RoiJobOptions:
    portfolio_key: Optional[str] = None
    force_start_date: Optional[date] = None
    force_end_date: Optional[date] = None
    include_clean: bool = False
    trigger: str = "manual"
    requested_by: Optional[str] = None


@dataclass
class PortfolioRunResult:
    portfolio_key: str
    state: PortfolioJobState = PortfolioJobState.SELECTED
    failed_in: Optional[PortfolioJobState] = None
    mode: Optional[str] = None
    nav_points: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None
    terminal: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state == PortfolioJobState.DONE


@dataclass
class RoiJobResult:
    run_id: str
    processed: int = 0
    skipped: Optional[str] = None
    portfolios: list[PortfolioRunResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for p in self.portfolios if p.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for p in self.portfolios if not p.succeeded)

    def to_dict(self) -> dict:
        result = {"processed": self.processed, "runId": self.run_id}
        if self.skipped:
            result["skipped"] = self.skipped
        return result


@dataclass
class _ResolvedPortfolio:
    mode: str
    timeline: dict[date, tuple[AllocationItem, ...]]
    primary: Optional[ResolvedAsset]
    transitions: list[date]


def _default_holder() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def _fallback_primary(diagnostics: SnapshotDiagnostics) -> Optional[ResolvedAsset]:
    """Primary recorded by the previous run, used before the first usable signal."""
    resolved = resolve_asset(diagnostics.primary_symbol)
    if resolved is None and diagnostics.primary_ticker:
        ticker = diagnostics.primary_ticker
        resolved = ResolvedAsset(symbol=ticker, ticker=ticker, source=source_for_ticker(ticker))
    return resolved


class PortfolioRoiJob:
    """
    Orchestrates one batch run.

    Args:
        tracker: Persistence facade (default RoiTracker on ``engine``)
        price_cache: Price cache (default PriceCacheManager with ``supplier``)
        lock_manager: Job lock (default JobLockManager on ``engine``)
        today_fn: Returns the default window end (UTC today)
    """

    def __init__(
        self,
        tracker: Optional[RoiTracker] = None,
        price_cache: Optional[PriceCacheManager] = None,
        lock_manager: Optional[JobLockManager] = None,
        engine: Optional[Engine] = None,
        supplier: Optional[PriceSupplier] = None,
        today_fn: Callable[[], date] = utc_today,
    ):
        self.tracker = tracker or RoiTracker(engine)
        self.price_cache = price_cache or PriceCacheManager(supplier=supplier, engine=engine)
        self.lock_manager = lock_manager or JobLockManager(engine=engine)
        self.today_fn = today_fn

    def run(self, options: Optional[RoiJobOptions] = None) -> RoiJobResult:
        options = options or RoiJobOptions()
        run_id = uuid.uuid4().hex
        holder = options.requested_by or _default_holder()
        result = RoiJobResult(run_id=run_id)

        acquisition = self.lock_manager.try_acquire(run_id, holder=holder, trigger=options.trigger)
        if not acquisition:
            logger.info(f"ROI job run {run_id} skipped: lock held by another run")
            result.skipped = "locked"
            return result

        logger.info(
            f"ROI job run {run_id} started (trigger={options.trigger}, holder={holder}"
            f"{', stolen from run ' + str(acquisition.previous_run_id) if acquisition.stolen else ''})"
        )
        try:
            snapshots = self.tracker.list_dirty_portfolios(
                include_clean=options.include_clean,
                portfolio_key=options.portfolio_key,
            )
            if not snapshots:
                logger.info("No portfolios need recompute")

            for snapshot in snapshots:
                try:
                    outcome = self.process_portfolio(snapshot, options, run_id)
                except Exception as e:
                    # unexpected error, or recording the failure failed; keep going
                    logger.exception(f"Unhandled failure for '{snapshot.portfolio_key}': {e}")
                    outcome = PortfolioRunResult(
                        portfolio_key=snapshot.portfolio_key,
                        state=PortfolioJobState.ERROR,
                        error=str(e),
                    )
                result.portfolios.append(outcome)
                result.processed += 1
        finally:
            self.lock_manager.release(run_id)

        logger.info(
            f"ROI job run {run_id} finished: {result.processed} processed, "
            f"{result.succeeded} succeeded, {result.failed} failed"
        )
        return result

    # =========================================================================
    # Per-portfolio state machine
    # =========================================================================

    def process_portfolio(
        self,
        snapshot: RoiDashboardSnapshot,
        options: RoiJobOptions,
        run_id: str,
    ) -> PortfolioRunResult:
        portfolio_key = snapshot.portfolio_key
        outcome = PortfolioRunResult(portfolio_key=portfolio_key)
        previous = SnapshotDiagnostics.from_payload(snapshot.payload)
        diagnostics = SnapshotDiagnostics(
            primary_mode=previous.primary_mode,
            primary_symbol=previous.primary_symbol,
            primary_ticker=previous.primary_ticker,
            primary_source=previous.primary_source,
            last_price_date=previous.last_price_date,
            last_run_id=run_id,
        )

        try:
            outcome.state = PortfolioJobState.RESOLVING_PRIMARY
            window_start, window_end = self._window(snapshot, options, previous)
            if window_start > window_end:
                raise EmptyNavError(
                    f"Empty window for '{portfolio_key}': {window_start} is after {window_end}",
                    details={"portfolio_key": portfolio_key},
                )
            price_start = window_start - timedelta(days=PRICE_LOOKBACK_DAYS)
            dates = list_calendar_days(price_start, window_end)

            resolved = self._resolve(portfolio_key, dates, previous, window_end)
            outcome.mode = resolved.mode
            diagnostics.primary_mode = resolved.mode
            if resolved.primary is not None:
                diagnostics.primary_symbol = resolved.primary.symbol
                diagnostics.primary_ticker = resolved.primary.ticker
                diagnostics.primary_source = resolved.primary.source
            if resolved.transitions:
                logger.info(
                    f"'{portfolio_key}' changes holdings on {len(resolved.transitions)} day(s); "
                    f"those days are priced with the new holding's own prior close"
                )

            outcome.state = PortfolioJobState.INGESTING_PRICES
            tickers = collect_tickers(resolved.timeline)
            self.price_cache.ensure_prices(tickers, price_start, window_end)
            prices = self.price_cache.get_prices_by_ticker(tickers, price_start, window_end)
            priced_days = [day for closes in prices.values() for day in closes]
            if priced_days:
                diagnostics.last_price_date = max(priced_days)

            outcome.state = PortfolioJobState.BUILDING_NAV
            points = build_nav(dates, resolved.timeline, prices)
            if not points:
                raise EmptyNavError(
                    f"No resolvable price for '{portfolio_key}' between {price_start} and {window_end}",
                    details={"portfolio_key": portfolio_key, "tickers": tickers},
                )
            metrics = compute_metrics(points)

            outcome.state = PortfolioJobState.PERSISTING
            diagnostics.last_error = None
            outcome.nav_points = self.tracker.persist_portfolio_run(
                portfolio_key, points, metrics, diagnostics
            )

            outcome.state = PortfolioJobState.DONE
            logger.info(
                f"'{portfolio_key}' recomputed ({resolved.mode}): {len(points)} points, "
                f"as of {metrics.as_of_date}, ROI {metrics.to_dict()['roiInception']:.2f}%"
            )
            return outcome

        except (RoiEngineError, SQLAlchemyError) as e:
            error = e if isinstance(e, RoiEngineError) else PersistenceError(
                f"Database error for '{portfolio_key}': {e}",
                details={"portfolio_key": portfolio_key},
            )
            outcome.failed_in = outcome.state
            outcome.state = PortfolioJobState.ERROR
            outcome.error = error.message
            outcome.error_code = error.error_code
            outcome.terminal = error.terminal
            logger.error(
                f"'{portfolio_key}' failed in {outcome.failed_in.value} "
                f"[{error.error_code}{', terminal' if error.terminal else ''}]: {error.message} "
                f"(primary={diagnostics.primary_symbol}/{diagnostics.primary_ticker})"
            )
            self.tracker.record_failure(
                portfolio_key, error.message, diagnostics, clear_dirty=error.terminal
            )
            return outcome

    def _window(
        self,
        snapshot: RoiDashboardSnapshot,
        options: RoiJobOptions,
        previous: SnapshotDiagnostics,
    ) -> tuple[date, date]:
        """
        Recompute window [start, end].

        Start is the earliest input date (first allocation snapshot or first
        signal) unless forced, so the NAV always rebases at the portfolio's
        inception.
        """
        window_end = to_utc_date(options.force_end_date) if options.force_end_date else self.today_fn()
        if options.force_start_date:
            return to_utc_date(options.force_start_date), window_end

        earliest = self._earliest_input_date(snapshot.portfolio_key)
        if earliest is None:
            raise UnresolvedPrimaryError(
                f"No allocation snapshots or primary signals for '{snapshot.portfolio_key}'",
                details={"portfolio_key": snapshot.portfolio_key},
            )
        if snapshot.recompute_from_date and snapshot.recompute_from_date < earliest:
            earliest = snapshot.recompute_from_date
        return earliest, window_end

    def _earliest_input_date(self, portfolio_key: str) -> Optional[date]:
        allocations = self.tracker.get_allocation_snapshots(portfolio_key)
        if allocations:
            return to_utc_date(allocations[0].as_of_date)
        scope = parse_portfolio_key(portfolio_key)
        if scope is None:
            return None
        signals = self.tracker.get_signals_for_scope(scope)
        return to_utc_date(signals[0].published_at) if signals else None

    def _resolve(
        self,
        portfolio_key: str,
        dates: list[date],
        previous: SnapshotDiagnostics,
        window_end: date,
    ) -> _ResolvedPortfolio:
        """
        Holdings in effect per day.

        Allocation snapshots win (fixed mode); otherwise the portfolio's
        signal scope drives primary mode.

        Raises:
            UnresolvedPrimaryError: Neither mode resolves any day
        """
        allocations = self.tracker.get_allocation_snapshots(portfolio_key)
        if allocations:
            timeline = resolve_allocation_timeline(dates, allocations)
            if not timeline:
                raise UnresolvedPrimaryError(
                    f"Allocation snapshots for '{portfolio_key}' hold no usable items in the window",
                    details={"portfolio_key": portfolio_key},
                )
            last_items = timeline[max(timeline)]
            top = max(last_items, key=lambda item: item.weight)
            primary = ResolvedAsset(symbol=top.ticker, ticker=top.ticker, source=source_for_ticker(top.ticker))
            transitions = transition_days(timeline, key=lambda items: frozenset(items))
            return _ResolvedPortfolio(PrimaryModes.FIXED, timeline, primary, transitions)

        scope = parse_portfolio_key(portfolio_key)
        signals = self.tracker.get_signals_for_scope(scope, end_date=window_end) if scope else []
        # Signals dated before the window are folded in on its first day; the
        # previous run's primary only stands in when the scope has no signals
        fallback = None if signals else _fallback_primary(previous)
        primary_timeline = resolve_timeline(dates, signals, fallback=fallback)
        if not primary_timeline:
            raise UnresolvedPrimaryError(
                f"No mappable primary signal for '{portfolio_key}'",
                details={"portfolio_key": portfolio_key, "signals": len(signals)},
            )
        primary = primary_timeline[max(primary_timeline)]
        transitions = transition_days(primary_timeline, key=lambda asset: asset.ticker)
        return _ResolvedPortfolio(
            PrimaryModes.PRIMARY, primary_as_allocation(primary_timeline), primary, transitions
        )


def run_portfolio_roi_job(
    portfolio_key: Optional[str] = None,
    force_start_date: Optional[date] = None,
    force_end_date: Optional[date] = None,
    include_clean: bool = False,
    trigger: str = "manual",
    requested_by: Optional[str] = None,
    engine: Optional[Engine] = None,
    supplier: Optional[PriceSupplier] = None,
) -> RoiJobResult:
    """
    Run the ROI batch job once.

    Returns:
        RoiJobResult; ``to_dict()`` gives {processed, runId, skipped?}.
        A lock held by another run is not an error: the result carries
        skipped="locked".
    """
    job = PortfolioRoiJob(engine=engine, supplier=supplier)
    return job.run(RoiJobOptions(
        portfolio_key=portfolio_key,
        force_start_date=force_start_date,
        force_end_date=force_end_date,
        include_clean=include_clean,
        trigger=trigger,
        requested_by=requested_by,
    ))
