"""Analytics: performance metrics and cross-symbol portfolio statistics."""

from tradesim.analytics.metrics import (
    MetricsSnapshot,
    DrawdownStats,
    compute_metrics,
    drawdown_stats,
    sharpe_ratio,
    sortino_ratio,
    max_drawdown,
    win_rate,
    profit_factor,
    expectancy,
    value_at_risk,
)
from tradesim.analytics.portfolio import (
    CrossSymbolAnalysis,
    PortfolioLimitReport,
    LimitBreach,
    analyze_cross_symbol,
    align_returns,
    combine_equity_curves,
    correlation_matrix,
    check_portfolio_limits,
)

__all__ = [
    "MetricsSnapshot",
    "DrawdownStats",
    "compute_metrics",
    "drawdown_stats",
    "sharpe_ratio",
    "sortino_ratio",
    "max_drawdown",
    "win_rate",
    "profit_factor",
    "expectancy",
    "value_at_risk",
    "CrossSymbolAnalysis",
    "PortfolioLimitReport",
    "LimitBreach",
    "analyze_cross_symbol",
    "align_returns",
    "combine_equity_curves",
    "correlation_matrix",
    "check_portfolio_limits",
]
