"""
EMA pullback with ADX trend filter.
Long: ADX > adx_min, close > EMA_slow, low touched EMA_fast, close back above EMA_fast.
Short: mirror. Two targets: TP1 at 1R (partial exit), TP2 at rr_mult R.
"""

from __future__ import annotations
from typing import Optional

import pandas as pd

from futures_agent.core.types import Bar, Signal, SignalSide
from futures_agent.indicators import atr, adx, ema
from futures_agent.strategies.base import BaseStrategy


class EmaPullbackStrategy(BaseStrategy):

    name = "ema_pullback"
    indicator_columns = ("ema_fast", "ema_slow", "atr", "adx")
    partial_take_profit = True

    def __init__(
        self,
        ema_fast: int = 50,
        ema_slow: int = 200,
        atr_len: int = 14,
        adx_len: int = 14,
        adx_min: float = 20.0,
        sl_atr_mult: float = 1.6,
        rr_mult: float = 2.2,
        ema_seed: str = "sma",
    ):
        self.ema_fast = ema_fast
        self.ema_slow = ema_slow
        self.atr_len = atr_len
        self.adx_len = adx_len
        self.adx_min = adx_min
        self.sl_atr_mult = sl_atr_mult
        self.rr_mult = rr_mult
        self.ema_seed = ema_seed

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        df["ema_fast"] = ema(df["close"], self.ema_fast, self.ema_seed)
        df["ema_slow"] = ema(df["close"], self.ema_slow, self.ema_seed)
        df["atr"] = atr(df, self.atr_len)
        df["adx"] = adx(df, self.adx_len)
        return df

    def get_signal(self, df: pd.DataFrame) -> Optional[Signal]:
        if df.empty:
            return None
        snap = self.snapshot(df)
        if not snap.is_defined(*self.indicator_columns):
            return None
        ind = snap.values
        if ind["adx"] <= self.adx_min or ind["atr"] <= 0:
            return None
        bar = Bar.from_row(df.iloc[-1])
        side = None
        if bar.close > ind["ema_slow"] and bar.low <= ind["ema_fast"] and bar.close > ind["ema_fast"]:
            side = SignalSide.LONG
        elif bar.close < ind["ema_slow"] and bar.high >= ind["ema_fast"] and bar.close < ind["ema_fast"]:
            side = SignalSide.SHORT
        if side is None:
            return None

        entry = bar.close
        dist = ind["atr"] * self.sl_atr_mult
        d = side.direction
        return Signal(
            side=side,
            entry_price=entry,
            stop_price=entry - d * dist,
            take_profit_price=entry + d * dist,
            take_profit_2=entry + d * dist * self.rr_mult,
            quantity=0.0,
            timestamp=bar.time,
            metadata=dict(ind),
        )
