"""
EMA fast/slow crossover with a long-horizon trend EMA filter.
Long when fast crosses above slow on this bar and close > trend EMA; short mirror.
No stop or target is placed: the position is closed on the reverse crossover.
Sizing uses a virtual stop distance of ATR * sl_atr_mult.
"""

from __future__ import annotations
from typing import Optional

import pandas as pd

from futures_agent.core.types import Bar, Position, Signal, SignalSide
from futures_agent.indicators import atr, ema
from futures_agent.strategies.base import BaseStrategy


def _cross(prev_fast: float, prev_slow: float, fast: float, slow: float) -> Optional[SignalSide]:
    if prev_fast <= prev_slow and fast > slow:
        return SignalSide.LONG
    if prev_fast >= prev_slow and fast < slow:
        return SignalSide.SHORT
    return None


class EmaCrossoverStrategy(BaseStrategy):

    name = "ema_crossover"
    indicator_columns = ("ema_fast", "ema_slow", "ema_trend", "atr")

    def __init__(
        self,
        ema_fast: int = 9,
        ema_slow: int = 21,
        ema_trend: int = 200,
        atr_len: int = 14,
        sl_atr_mult: float = 2.0,
        ema_seed: str = "sma",
    ):
        self.ema_fast = ema_fast
        self.ema_slow = ema_slow
        self.ema_trend = ema_trend
        self.atr_len = atr_len
        self.sl_atr_mult = sl_atr_mult
        self.ema_seed = ema_seed

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        df["ema_fast"] = ema(df["close"], self.ema_fast, self.ema_seed)
        df["ema_slow"] = ema(df["close"], self.ema_slow, self.ema_seed)
        df["ema_trend"] = ema(df["close"], self.ema_trend, self.ema_seed)
        df["atr"] = atr(df, self.atr_len)
        return df

    def crossover(self, df: pd.DataFrame) -> Optional[SignalSide]:
        """Direction of a fast/slow crossover on the last bar, if any."""
        if len(df) < 2:
            return None
        prev = self.snapshot(df, -2)
        cur = self.snapshot(df, -1)
        if not (prev.is_defined("ema_fast", "ema_slow") and cur.is_defined("ema_fast", "ema_slow")):
            return None
        return _cross(prev.values["ema_fast"], prev.values["ema_slow"], cur.values["ema_fast"], cur.values["ema_slow"])

    def get_signal(self, df: pd.DataFrame) -> Optional[Signal]:
        side = self.crossover(df)
        if side is None:
            return None
        snap = self.snapshot(df)
        if not snap.is_defined(*self.indicator_columns):
            return None
        ind = snap.values
        bar = Bar.from_row(df.iloc[-1])
        if side == SignalSide.LONG and bar.close <= ind["ema_trend"]:
            return None
        if side == SignalSide.SHORT and bar.close >= ind["ema_trend"]:
            return None
        metadata = dict(ind)
        metadata["stop_distance"] = ind["atr"] * self.sl_atr_mult
        return Signal(
            side=side,
            entry_price=bar.close,
            stop_price=None,
            take_profit_price=None,
            quantity=0.0,
            timestamp=bar.time,
            metadata=metadata,
        )

    def exit_reason(self, position: Position, df: pd.DataFrame) -> Optional[str]:
        side = self.crossover(df)
        if side is not None and side != position.side:
            return "reversal"
        return None
