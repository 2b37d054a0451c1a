"""
SQLModel definitions for ROI tracking tables.

Tables:
- performance_series: Derived daily NAV points, one per (series type, day, portfolio)
- allocation_snapshot: Weighted allocation decisions, append-only
- portfolio_daily_signal: Published primary/secondary/tertiary picks per tier
- roi_dashboard_snapshot: Per-portfolio ROI record + dirty flag (also hosts the job lock row)

Plus the typed diagnostics carried in the snapshot payload.
"""

from dataclasses import asdict, dataclass, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, UniqueConstraint
from sqlmodel import Column, Field, SQLModel

from utils.calendar_days import utcnow


class PerformanceSeries(SQLModel, table=True):
    """
    Daily NAV values per portfolio.

    Derived and fully recomputable; rows are overwritten on every recompute.
    """
    __tablename__ = "performance_series"
    __table_args__ = (
        UniqueConstraint(
            "series_type", "series_date", "portfolio_key",
            name="uix_performance_series_type_date_key",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    series_type: str = Field(max_length=30, index=True)
    series_date: date = Field(index=True)
    portfolio_key: str = Field(max_length=50, index=True)

    # NAV value (100 at inception)
    value: Decimal = Field(max_digits=38, decimal_places=18)

    # Daily return (as decimal, e.g., 0.0123 for +1.23%)
    daily_return: Optional[Decimal] = Field(default=None, max_digits=38, decimal_places=18)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AllocationSnapshot(SQLModel, table=True):
    """
    Weighted allocation decision for a portfolio, effective from as_of_date.

    items: [{"asset": "BTC", "weight": "0.6"}, ...]. Weights need not sum to
    1; the remainder is an implied cash residual. Immutable once written.
    """
    __tablename__ = "allocation_snapshot"
    __table_args__ = (
        UniqueConstraint(
            "portfolio_key", "as_of_date",
            name="uix_allocation_snapshot_key_date",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_key: str = Field(max_length=50, index=True)
    as_of_date: date = Field(index=True)
    items: list = Field(default=[], sa_column=Column(JSON, nullable=False))
    cash_weight: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=8)
    created_at: datetime = Field(default_factory=utcnow)


class PortfolioDailySignal(SQLModel, table=True):
    """
    Primary-asset signal published for a tier (and category for T3).

    The raw signal is opaque text: JSON with primaryAsset/secondaryAsset/
    tertiaryAsset or free text naming the assets in order.
    """
    __tablename__ = "portfolio_daily_signal"

    id: Optional[int] = Field(default=None, primary_key=True)
    tier: str = Field(max_length=5, index=True)
    category: Optional[str] = Field(default=None, max_length=20)
    signal: str = Field(max_length=500)
    published_at: datetime = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow)


class RoiDashboardSnapshot(SQLModel, table=True):
    """
    ROI record for one portfolio.

    needs_recompute=True marks the portfolio for the next batch run. Rows
    with scope JOB_LOCK are the job mutex, not portfolios.
    """
    __tablename__ = "roi_dashboard_snapshot"
    __table_args__ = (
        UniqueConstraint(
            "scope", "portfolio_key",
            name="uix_roi_dashboard_snapshot_scope_key",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    scope: str = Field(max_length=20, index=True)
    portfolio_key: str = Field(max_length=50, index=True)

    needs_recompute: bool = Field(default=False, index=True)
    recompute_from_date: Optional[date] = Field(default=None)

    # Metrics (percent values, e.g. 12.5 for +12.5%)
    as_of_date: Optional[date] = Field(default=None)
    roi_inception: Optional[Decimal] = Field(default=None, max_digits=38, decimal_places=18)
    roi_30d: Optional[Decimal] = Field(default=None, max_digits=38, decimal_places=18)
    max_drawdown: Optional[Decimal] = Field(default=None, max_digits=38, decimal_places=18)
    volatility: Optional[Decimal] = Field(default=None, max_digits=38, decimal_places=18)
    last_computed_at: Optional[datetime] = Field(default=None)

    # Serialized SnapshotDiagnostics (portfolios) or lock state (JOB_LOCK)
    payload: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# Constants for snapshot scopes
class Scopes:
    """Standard snapshot scope names."""
    PORTFOLIO = "PORTFOLIO"
    JOB_LOCK = "JOB_LOCK"

    @classmethod
    def all(cls) -> list[str]:
        return [cls.PORTFOLIO, cls.JOB_LOCK]


# Constants for series types
class SeriesTypes:
    """Standard performance series types."""
    MODEL_NAV = "MODEL_NAV"

    @classmethod
    def all(cls) -> list[str]:
        return [cls.MODEL_NAV]


# Constants for portfolio modes
class PrimaryModes:
    """How a portfolio's daily holdings are derived."""
    PRIMARY = "primary"  # 100% in the resolved primary asset
    FIXED = "fixed"      # weighted allocation snapshots

    @classmethod
    def all(cls) -> list[str]:
        return [cls.PRIMARY, cls.FIXED]


_PAYLOAD_KEYS = {
    "primary_symbol": "primarySymbol",
    "primary_ticker": "primaryTicker",
    "primary_source": "primarySource",
    "primary_mode": "primaryMode",
    "last_price_date": "lastPriceDate",
    "last_error": "lastError",
    "last_run_id": "lastRunId",
}


@dataclass
class SnapshotDiagnostics:
    """
    Diagnostics stored in RoiDashboardSnapshot.payload.

    Observability only: the job reads primary_symbol/primary_ticker back as
    the fallback primary, nothing else drives control flow.
    """
    primary_symbol: Optional[str] = None
    primary_ticker: Optional[str] = None
    primary_source: Optional[str] = None
    primary_mode: Optional[str] = None
    last_price_date: Optional[date] = None
    last_error: Optional[str] = None
    last_run_id: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload = {}
        for name, value in asdict(self).items():
            if isinstance(value, date):
                value = value.isoformat()
            payload[_PAYLOAD_KEYS[name]] = value
        return payload

    @classmethod
    def from_payload(cls, payload: Optional[dict]) -> "SnapshotDiagnostics":
        if not payload:
            return cls()
        values = {}
        for f in fields(cls):
            value = payload.get(_PAYLOAD_KEYS[f.name])
            if f.name == "last_price_date" and isinstance(value, str):
                value = date.fromisoformat(value)
            values[f.name] = value
        return cls(**values)
