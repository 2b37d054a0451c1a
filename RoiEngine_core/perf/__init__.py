"""
Trade equity-curve simulation.

- r_multiple: R-multiples, expectancy and trade validation
- equity: position sizing, cost model and the daily equity curve
- stats: win rate, profit factor, Sharpe and Calmar over closed trades
- heatmap: monthly returns, their distribution and trailing-window returns
"""

from .r_multiple import (
    Directions,
    calculate_r_multiple,
    calculate_r_multiples,
    calculate_average_r_multiple,
    calculate_expectancy,
    validate_r_multiple,
)
from .equity import (
    SignalTrade,
    PortfolioSettings,
    PositionModels,
    TradeStatus,
    PositionSize,
    EquityPoint,
    calculate_position_size,
    calculate_trade_pnl,
    build_equity_curve,
    get_current_equity,
    calculate_unrealized_pnl,
    equity_point_to_float,
)
from .stats import (
    PerformanceStats,
    TradeStats,
    calculate_trade_stats,
    calculate_performance_stats,
    calculate_time_range_stats,
)
from .heatmap import (
    MonthlyReturn,
    MonthlyReturnStats,
    calculate_monthly_returns,
    calculate_monthly_return_stats,
    calculate_time_range_return,
    calculate_ytd_return,
    calculate_last_n_days_return,
    calculate_last_n_months_return,
    calculate_last_n_years_return,
    get_best_worst_months,
)

__all__ = [
    "Directions",
    "calculate_r_multiple",
    "calculate_r_multiples",
    "calculate_average_r_multiple",
    "calculate_expectancy",
    "validate_r_multiple",
    "SignalTrade",
    "PortfolioSettings",
    "PositionModels",
    "TradeStatus",
    "PositionSize",
    "EquityPoint",
    "calculate_position_size",
    "calculate_trade_pnl",
    "build_equity_curve",
    "get_current_equity",
    "calculate_unrealized_pnl",
    "equity_point_to_float",
    "PerformanceStats",
    "TradeStats",
    "calculate_trade_stats",
    "calculate_performance_stats",
    "calculate_time_range_stats",
    "MonthlyReturn",
    "MonthlyReturnStats",
    "calculate_monthly_returns",
    "calculate_monthly_return_stats",
    "calculate_time_range_return",
    "calculate_ytd_return",
    "calculate_last_n_days_return",
    "calculate_last_n_months_return",
    "calculate_last_n_years_return",
    "get_best_worst_months",
]
