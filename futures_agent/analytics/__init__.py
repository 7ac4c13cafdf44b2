"""Analytics: trade statistics for reports (win rate, profit factor, drawdown)."""

from futures_agent.analytics.metrics import (
    PerformanceMetrics,
    compute_metrics,
    trade_metrics,
    max_drawdown,
    win_rate,
    profit_factor,
    expectancy,
)

__all__ = [
    "PerformanceMetrics",
    "compute_metrics",
    "trade_metrics",
    "max_drawdown",
    "win_rate",
    "profit_factor",
    "expectancy",
]
