"""Bar data: aggregation to the working timeframe."""

from futures_agent.data.aggregator import BAR_COLUMNS, aggregate, align_start, closed_bars

__all__ = ["BAR_COLUMNS", "aggregate", "align_start", "closed_bars"]
