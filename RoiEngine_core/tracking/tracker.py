"""
ROI Tracking Persistence.

Provides the RoiTracker class that:
1. Records allocation snapshots and primary signals, marking portfolios dirty
2. Lists the portfolios a batch run should recompute
3. Stores recomputed NAV series and snapshot metrics atomically
4. Records per-portfolio failures in the snapshot diagnostics

The batch job (roi_job.py) is the main consumer; the admin surface that
publishes allocations and signals calls the record_* methods.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence

import pandas as pd
from sqlalchemy import delete, or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..db import get_engine
from ..errors import PersistenceError
from ..num import D
from utils.calendar_days import as_utc, to_utc_date, utcnow
from .assets import SignalScope
from .metrics import RoiMetrics
from .models import (
    AllocationSnapshot,
    PerformanceSeries,
    PortfolioDailySignal,
    RoiDashboardSnapshot,
    Scopes,
    SeriesTypes,
    SnapshotDiagnostics,
)
from .nav import NavPoint

logger = logging.getLogger(__name__)


class RoiTracker:
    """
    Persistence facade for the ROI engine.

    Example:
        tracker = RoiTracker()
        tracker.record_allocation_snapshot(
            "core-basket", date(2026, 3, 1),
            [{"asset": "BTC", "weight": "0.6"}, {"asset": "ETH", "weight": "0.4"}],
        )
        # core-basket is now dirty and picked up by the next ROI job run
    """

    def __init__(self, engine: Optional[Engine] = None):
        """
        Initialize the tracker.

        Args:
            engine: SQLAlchemy engine (default engine from DATABASE_URL if not provided)
        """
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    # =========================================================================
    # Dirty Marking
    # =========================================================================

    def _get_or_create_snapshot(self, session: Session, portfolio_key: str) -> RoiDashboardSnapshot:
        snapshot = session.exec(
            select(RoiDashboardSnapshot)
            .where(RoiDashboardSnapshot.scope == Scopes.PORTFOLIO)
            .where(RoiDashboardSnapshot.portfolio_key == portfolio_key)
        ).first()
        if snapshot is None:
            snapshot = RoiDashboardSnapshot(scope=Scopes.PORTFOLIO, portfolio_key=portfolio_key)
            session.add(snapshot)
            logger.info(f"Created ROI snapshot for portfolio '{portfolio_key}'")
        return snapshot

    @staticmethod
    def _flag_dirty(snapshot: RoiDashboardSnapshot, from_date: Optional[date]) -> None:
        snapshot.needs_recompute = True
        if from_date is not None:
            current = snapshot.recompute_from_date
            snapshot.recompute_from_date = from_date if current is None else min(current, from_date)
        snapshot.updated_at = utcnow()

    def mark_dirty(self, portfolio_key: str, from_date: Optional[date] = None) -> RoiDashboardSnapshot:
        """
        Flag a portfolio for the next batch run.

        recompute_from_date only ever moves earlier until the job clears it.
        """
        with Session(self.engine) as session:
            snapshot = self._get_or_create_snapshot(session, portfolio_key)
            self._flag_dirty(snapshot, from_date)
            session.add(snapshot)
            session.commit()
            session.refresh(snapshot)
            logger.debug(f"Marked '{portfolio_key}' dirty from {snapshot.recompute_from_date}")
            return snapshot

    def record_allocation_snapshot(
        self,
        portfolio_key: str,
        as_of_date: date,
        items: list[dict],
        cash_weight: Optional[Decimal] = None,
    ) -> AllocationSnapshot:
        """
        Record a weighted allocation effective from as_of_date.

        Snapshots are immutable: if one already exists for the same day it is
        returned unchanged. Either way the portfolio is marked dirty.

        Args:
            portfolio_key: Portfolio the allocation belongs to
            as_of_date: First day the allocation is in effect
            items: List of dicts with keys: asset, weight
            cash_weight: Explicit cash residual (defaults to 1 - sum of weights)

        Returns:
            The stored AllocationSnapshot
        """
        day = to_utc_date(as_of_date)
        stored_items = [
            {"asset": str(item["asset"]).strip().upper(), "weight": str(D(item.get("weight", 0)))}
            for item in items
        ]
        if cash_weight is None:
            cash_weight = Decimal(1) - sum((D(i["weight"]) for i in stored_items), Decimal(0))

        with Session(self.engine) as session:
            existing = session.exec(
                select(AllocationSnapshot)
                .where(AllocationSnapshot.portfolio_key == portfolio_key)
                .where(AllocationSnapshot.as_of_date == day)
            ).first()

            if existing:
                logger.warning(
                    f"Allocation snapshot for '{portfolio_key}' on {day} already exists, keeping it"
                )
                allocation = existing
            else:
                allocation = AllocationSnapshot(
                    portfolio_key=portfolio_key,
                    as_of_date=day,
                    items=stored_items,
                    cash_weight=D(cash_weight),
                )
                session.add(allocation)

            snapshot = self._get_or_create_snapshot(session, portfolio_key)
            self._flag_dirty(snapshot, day)
            session.add(snapshot)
            session.commit()
            session.refresh(allocation)
            return allocation

    def record_primary_signal(
        self,
        tier: str,
        signal: str,
        published_at: datetime,
        category: Optional[str] = None,
    ) -> PortfolioDailySignal:
        """
        Record a published primary/secondary/tertiary signal and mark the
        portfolio fed by its scope dirty from the publish day.
        """
        scope = SignalScope(tier=tier.upper(), category=category.lower() if category else None)
        published_at = as_utc(published_at)

        with Session(self.engine) as session:
            record = PortfolioDailySignal(
                tier=scope.tier,
                category=scope.category,
                signal=signal,
                published_at=published_at,
            )
            session.add(record)

            snapshot = self._get_or_create_snapshot(session, scope.portfolio_key)
            self._flag_dirty(snapshot, to_utc_date(published_at))
            session.add(snapshot)
            session.commit()
            session.refresh(record)
            logger.debug(f"Recorded {scope.portfolio_key} signal published {published_at}")
            return record

    # =========================================================================
    # Batch Inputs
    # =========================================================================

    def get_snapshot(self, portfolio_key: str) -> Optional[RoiDashboardSnapshot]:
        """Get the ROI snapshot of a portfolio."""
        with Session(self.engine) as session:
            return session.exec(
                select(RoiDashboardSnapshot)
                .where(RoiDashboardSnapshot.scope == Scopes.PORTFOLIO)
                .where(RoiDashboardSnapshot.portfolio_key == portfolio_key)
            ).first()

    def list_dirty_portfolios(
        self,
        include_clean: bool = False,
        portfolio_key: Optional[str] = None,
    ) -> list[RoiDashboardSnapshot]:
        """
        Snapshots the batch run should process, ordered by portfolio key.

        Args:
            include_clean: Also return snapshots with needs_recompute=False
            portfolio_key: Restrict to one portfolio
        """
        with Session(self.engine) as session:
            query = select(RoiDashboardSnapshot).where(RoiDashboardSnapshot.scope == Scopes.PORTFOLIO)
            if not include_clean:
                query = query.where(RoiDashboardSnapshot.needs_recompute == True)  # noqa: E712
            if portfolio_key:
                query = query.where(RoiDashboardSnapshot.portfolio_key == portfolio_key)
            query = query.order_by(RoiDashboardSnapshot.portfolio_key)
            return list(session.exec(query).all())

    def get_allocation_snapshots(self, portfolio_key: str) -> list[AllocationSnapshot]:
        """Allocation snapshots of a portfolio, oldest first."""
        with Session(self.engine) as session:
            return list(session.exec(
                select(AllocationSnapshot)
                .where(AllocationSnapshot.portfolio_key == portfolio_key)
                .order_by(AllocationSnapshot.as_of_date)
            ).all())

    def get_latest_allocation(
        self,
        portfolio_key: str,
        as_of: Optional[date] = None,
    ) -> Optional[AllocationSnapshot]:
        """Allocation in effect on ``as_of`` (default: the newest one)."""
        with Session(self.engine) as session:
            query = select(AllocationSnapshot).where(AllocationSnapshot.portfolio_key == portfolio_key)
            if as_of is not None:
                query = query.where(AllocationSnapshot.as_of_date <= as_of)
            return session.exec(query.order_by(AllocationSnapshot.as_of_date.desc())).first()

    def get_signals_for_scope(
        self,
        scope: SignalScope,
        end_date: Optional[date] = None,
    ) -> list[PortfolioDailySignal]:
        """Signals published for a tier/category, oldest first."""
        with Session(self.engine) as session:
            query = select(PortfolioDailySignal).where(PortfolioDailySignal.tier == scope.tier)
            if scope.category:
                query = query.where(PortfolioDailySignal.category == scope.category)
            else:
                query = query.where(PortfolioDailySignal.category == None)  # noqa: E711
            query = query.order_by(PortfolioDailySignal.published_at)
            records = list(session.exec(query).all())

        if end_date is not None:
            records = [r for r in records if to_utc_date(r.published_at) <= end_date]
        return records

    # =========================================================================
    # Results
    # =========================================================================

    def persist_portfolio_run(
        self,
        portfolio_key: str,
        points: Sequence[NavPoint],
        metrics: RoiMetrics,
        diagnostics: SnapshotDiagnostics,
        series_type: str = SeriesTypes.MODEL_NAV,
    ) -> int:
        """
        Upsert the NAV series and update the snapshot in one transaction.

        Either every NAV row and the snapshot update commit, or nothing does.

        Returns:
            Number of NAV rows written

        Raises:
            PersistenceError: The transaction failed and was rolled back
        """
        now = utcnow()
        session = Session(self.engine)
        try:
            days = [p.day for p in points]
            # Rows outside the new range belong to an older inception
            stale = (
                delete(PerformanceSeries)
                .where(PerformanceSeries.series_type == series_type)
                .where(PerformanceSeries.portfolio_key == portfolio_key)
            )
            if days:
                stale = stale.where(
                    or_(PerformanceSeries.series_date < min(days), PerformanceSeries.series_date > max(days))
                )
            removed = session.connection().execute(stale).rowcount
            if removed:
                logger.info(f"Removed {removed} stale NAV rows for '{portfolio_key}'")

            existing = {}
            if days:
                existing = {
                    row.series_date: row
                    for row in session.exec(
                        select(PerformanceSeries)
                        .where(PerformanceSeries.series_type == series_type)
                        .where(PerformanceSeries.portfolio_key == portfolio_key)
                        .where(PerformanceSeries.series_date >= min(days))
                        .where(PerformanceSeries.series_date <= max(days))
                    ).all()
                }

            for point in points:
                row = existing.get(point.day)
                if row is None:
                    row = PerformanceSeries(
                        series_type=series_type,
                        series_date=point.day,
                        portfolio_key=portfolio_key,
                        value=point.nav,
                        daily_return=point.daily_return,
                        created_at=now,
                    )
                else:
                    row.value = point.nav
                    row.daily_return = point.daily_return
                row.updated_at = now
                session.add(row)

            snapshot = self._get_or_create_snapshot(session, portfolio_key)
            snapshot.roi_inception = metrics.roi_inception
            snapshot.roi_30d = metrics.roi_30d
            snapshot.max_drawdown = metrics.max_drawdown
            snapshot.volatility = metrics.volatility
            snapshot.as_of_date = metrics.as_of_date
            snapshot.needs_recompute = False
            snapshot.recompute_from_date = None
            snapshot.last_computed_at = now
            snapshot.payload = diagnostics.to_payload()
            snapshot.updated_at = now
            session.add(snapshot)

            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(
                f"Failed to persist ROI results for '{portfolio_key}': {e}",
                details={"portfolio_key": portfolio_key},
            ) from e
        finally:
            session.close()

        logger.info(f"Persisted {len(points)} NAV points for '{portfolio_key}'")
        return len(points)

    def record_failure(
        self,
        portfolio_key: str,
        message: str,
        diagnostics: SnapshotDiagnostics,
        clear_dirty: bool,
    ) -> None:
        """
        Store a failure in the snapshot diagnostics.

        Args:
            portfolio_key: Failed portfolio
            message: Human-readable lastError
            diagnostics: Diagnostics gathered before the failure
            clear_dirty: True for terminal failures (no retry until new input)
        """
        diagnostics.last_error = message
        now = utcnow()
        try:
            with Session(self.engine) as session:
                snapshot = self._get_or_create_snapshot(session, portfolio_key)
                snapshot.payload = diagnostics.to_payload()
                if clear_dirty:
                    snapshot.needs_recompute = False
                    snapshot.recompute_from_date = None
                    snapshot.last_computed_at = now
                snapshot.updated_at = now
                session.add(snapshot)
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to record failure for '{portfolio_key}': {e}",
                details={"portfolio_key": portfolio_key, "last_error": message},
            ) from e

    # =========================================================================
    # Performance Retrieval
    # =========================================================================

    def get_nav_points(
        self,
        portfolio_key: str,
        series_type: str = SeriesTypes.MODEL_NAV,
    ) -> list[NavPoint]:
        """Stored NAV series as Decimal NavPoints, oldest first (simulator input)."""
        with Session(self.engine) as session:
            records = session.exec(
                select(PerformanceSeries)
                .where(PerformanceSeries.portfolio_key == portfolio_key)
                .where(PerformanceSeries.series_type == series_type)
                .order_by(PerformanceSeries.series_date)
            ).all()
            return [
                NavPoint(day=r.series_date, nav=D(r.value), daily_return=D(r.daily_return or 0))
                for r in records
            ]

    def get_nav_series(
        self,
        portfolio_key: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        series_type: str = SeriesTypes.MODEL_NAV,
    ) -> pd.DataFrame:
        """
        Get the NAV time series of a portfolio.

        Returns:
            DataFrame indexed by series_date with columns: nav, daily_return
            (floats, for display)
        """
        with Session(self.engine) as session:
            query = (
                select(PerformanceSeries)
                .where(PerformanceSeries.portfolio_key == portfolio_key)
                .where(PerformanceSeries.series_type == series_type)
            )
            if start_date:
                query = query.where(PerformanceSeries.series_date >= start_date)
            if end_date:
                query = query.where(PerformanceSeries.series_date <= end_date)

            query = query.order_by(PerformanceSeries.series_date)
            records = session.exec(query).all()

            if not records:
                return pd.DataFrame(columns=["nav", "daily_return"])

            data = [
                {
                    "series_date": r.series_date,
                    "nav": float(r.value),
                    "daily_return": float(r.daily_return) if r.daily_return is not None else 0.0,
                }
                for r in records
            ]

        df = pd.DataFrame(data)
        df["series_date"] = pd.to_datetime(df["series_date"])
        df = df.set_index("series_date")
        return df


# Convenience function
def get_tracker(engine: Optional[Engine] = None) -> RoiTracker:
    """Get a RoiTracker instance."""
    return RoiTracker(engine)
