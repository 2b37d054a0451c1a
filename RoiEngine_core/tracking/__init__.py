"""
Portfolio ROI Tracking Module

This module turns allocation decisions and daily closes into a NAV series
and dashboard metrics per portfolio.

Main components:
- RoiTracker: Persistence of allocations, signals, NAV series and snapshots
- Timeline: Resolves the holding in effect on each calendar day
- NAV: Compounds forward-filled daily returns into a NAV starting at 100
- Metrics: ROI since inception, 30-day ROI, max drawdown, volatility
- Simulator: Growth of an investment along the NAV series, allocation split
- JobLockManager: Database-backed mutex for the batch job
- PortfolioRoiJob: Batch recompute of dirty portfolios
"""

from .models import (
    PerformanceSeries,
    AllocationSnapshot,
    PortfolioDailySignal,
    RoiDashboardSnapshot,
    SnapshotDiagnostics,
    Scopes,
    SeriesTypes,
    PrimaryModes,
)
from .assets import (
    AllocationItem,
    ResolvedAsset,
    SignalScope,
    resolve_asset,
    parse_allocation_assets,
    parse_portfolio_key,
)
from .timeline import (
    resolve_timeline,
    resolve_allocation_timeline,
    primary_as_allocation,
)
from .nav import NavPoint, build_nav, forward_fill_prices
from .metrics import (
    RoiMetrics,
    compute_metrics,
    calculate_roi_inception,
    calculate_roi_window,
    calculate_max_drawdown,
    calculate_volatility,
)
from .simulator import (
    AllocationSplit,
    BalancePoint,
    SimulatorInput,
    SimulatorResult,
    calculate_allocation_split,
    run_simulation,
)
from .lock import JobLockManager, JobLockState, LockAcquisition
from .tracker import RoiTracker, get_tracker
from .roi_job import (
    PortfolioJobState,
    PortfolioRoiJob,
    RoiJobOptions,
    RoiJobResult,
    run_portfolio_roi_job,
)

__all__ = [
    # Models
    "PerformanceSeries",
    "AllocationSnapshot",
    "PortfolioDailySignal",
    "RoiDashboardSnapshot",
    "SnapshotDiagnostics",
    "Scopes",
    "SeriesTypes",
    "PrimaryModes",
    # Assets
    "AllocationItem",
    "ResolvedAsset",
    "SignalScope",
    "resolve_asset",
    "parse_allocation_assets",
    "parse_portfolio_key",
    # Timeline
    "resolve_timeline",
    "resolve_allocation_timeline",
    "primary_as_allocation",
    # NAV
    "NavPoint",
    "build_nav",
    "forward_fill_prices",
    # Metrics
    "RoiMetrics",
    "compute_metrics",
    "calculate_roi_inception",
    "calculate_roi_window",
    "calculate_max_drawdown",
    "calculate_volatility",
    # Simulator
    "AllocationSplit",
    "BalancePoint",
    "SimulatorInput",
    "SimulatorResult",
    "calculate_allocation_split",
    "run_simulation",
    # Lock
    "JobLockManager",
    "JobLockState",
    "LockAcquisition",
    # Tracker
    "RoiTracker",
    "get_tracker",
    # Job
    "PortfolioJobState",
    "PortfolioRoiJob",
    "RoiJobOptions",
    "RoiJobResult",
    "run_portfolio_roi_job",
]
