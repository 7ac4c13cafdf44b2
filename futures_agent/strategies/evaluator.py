"""Signal evaluation: history gate, policy signal, then risk sizing."""

from __future__ import annotations
import logging
from dataclasses import replace
from typing import Optional

import pandas as pd

from futures_agent.core.types import Signal
from futures_agent.risk.manager import RiskManager
from futures_agent.strategies.base import BaseStrategy

logger = logging.getLogger("futures_agent.strategies.evaluator")


class SignalEvaluator:
    """
    Reads the account balance for sizing, never mutates account state.
    `df` must already carry the strategy's indicator columns.
    """

    def __init__(self, strategy: BaseStrategy, risk_manager: RiskManager, min_history_bars: int = 250):
        self.strategy = strategy
        self.risk_manager = risk_manager
        self.min_history_bars = min_history_bars
        self.last_rejection: Optional[str] = None

    def evaluate(self, df: pd.DataFrame, balance: float) -> Optional[Signal]:
        self.last_rejection = None
        if len(df) < self.min_history_bars:
            logger.debug("History too short: %d < %d bars", len(df), self.min_history_bars)
            return None
        raw = self.strategy.get_signal(df)
        if raw is None:
            return None
        result = self.risk_manager.validate_signal(raw, balance)
        if not result.allowed:
            self.last_rejection = result.reason
            logger.info("Entry %s rejected: %s", raw.side.name, result.reason)
            return None
        return replace(raw, quantity=result.quantity)
