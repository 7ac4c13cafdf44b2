"""Abstract entry policy: indicators, entry signal and policy-specific exit hooks."""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional, Tuple

import pandas as pd

from futures_agent.core.types import IndicatorSnapshot, Position, Signal
from futures_agent.indicators.snapshot import build_snapshot


class BaseStrategy(ABC):
    """
    A strategy adds indicator columns to a bar frame and may return a Signal for
    the last row, which is always the most recently closed working-timeframe bar.
    Every strategy provides an "atr" column (used for trailing and reconciliation).
    """

    name: str = "base"
    indicator_columns: Tuple[str, ...] = ()
    partial_take_profit: bool = False
    uses_trailing_stop: bool = False
    default_sizing: str = "risk"

    @abstractmethod
    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        """Add indicator columns to OHLCV DataFrame. No lookahead."""

    @abstractmethod
    def get_signal(self, df: pd.DataFrame) -> Optional[Signal]:
        """Return a raw Signal (quantity 0) for the last bar, or None."""

    def snapshot(self, df: pd.DataFrame, index: int = -1) -> IndicatorSnapshot:
        return build_snapshot(df, self.indicator_columns, index)

    def exit_reason(self, position: Position, df: pd.DataFrame) -> Optional[str]:
        """Policy exit checked together with stop/target (e.g. reverse crossover). Exits at close."""
        return None

    def late_exit_reason(self, position: Position, df: pd.DataFrame) -> Optional[str]:
        """Policy exit checked after the trailing ratchet (e.g. trend break). Exits at close."""
        return None
