"""
Bollinger band breakout with volume confirmation (long only).
Entry: close > upper band + breakout_atr_mult * ATR, close > trend EMA,
volume > vol_mult * volume SMA, MACD histogram > 0, RSI > rsi_min.
Exit: initial ATR stop, trailing stop, and close below the short exit EMA.
"""

from __future__ import annotations
from typing import Optional

import pandas as pd

from futures_agent.core.types import Bar, Position, Signal, SignalSide
from futures_agent.indicators import atr, bollinger, ema, macd_histogram, rsi, sma
from futures_agent.strategies.base import BaseStrategy


class BandBreakoutStrategy(BaseStrategy):

    name = "band_breakout"
    indicator_columns = ("bb_upper", "bb_middle", "atr", "ema_trend", "ema_exit", "vol_ma", "macd_hist", "rsi")
    uses_trailing_stop = True
    default_sizing = "margin"

    def __init__(
        self,
        bb_len: int = 20,
        bb_mult: float = 2.0,
        atr_len: int = 14,
        ema_trend: int = 200,
        ema_exit: int = 20,
        vol_ma_len: int = 20,
        vol_mult: float = 2.0,
        breakout_atr_mult: float = 0.5,
        macd_fast: int = 12,
        macd_slow: int = 26,
        macd_signal: int = 9,
        rsi_len: int = 14,
        rsi_min: float = 55.0,
        sl_atr_mult: float = 1.6,
        ema_seed: str = "sma",
    ):
        self.bb_len = bb_len
        self.bb_mult = bb_mult
        self.atr_len = atr_len
        self.ema_trend = ema_trend
        self.ema_exit = ema_exit
        self.vol_ma_len = vol_ma_len
        self.vol_mult = vol_mult
        self.breakout_atr_mult = breakout_atr_mult
        self.macd_fast = macd_fast
        self.macd_slow = macd_slow
        self.macd_signal = macd_signal
        self.rsi_len = rsi_len
        self.rsi_min = rsi_min
        self.sl_atr_mult = sl_atr_mult
        self.ema_seed = ema_seed

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        bands = bollinger(df["close"], self.bb_len, self.bb_mult)
        df["bb_upper"] = bands["upper"].to_numpy()
        df["bb_middle"] = bands["middle"].to_numpy()
        df["atr"] = atr(df, self.atr_len)
        df["ema_trend"] = ema(df["close"], self.ema_trend, self.ema_seed)
        df["ema_exit"] = ema(df["close"], self.ema_exit, self.ema_seed)
        df["vol_ma"] = sma(df["volume"], self.vol_ma_len)
        df["macd_hist"] = macd_histogram(df["close"], self.macd_fast, self.macd_slow, self.macd_signal, self.ema_seed)
        df["rsi"] = rsi(df["close"], self.rsi_len)
        return df

    def get_signal(self, df: pd.DataFrame) -> Optional[Signal]:
        if df.empty:
            return None
        snap = self.snapshot(df)
        if not snap.is_defined(*self.indicator_columns):
            return None
        ind = snap.values
        bar = Bar.from_row(df.iloc[-1])
        if ind["atr"] <= 0:
            return None
        breakout = bar.close > ind["bb_upper"] + self.breakout_atr_mult * ind["atr"]
        trend_ok = bar.close > ind["ema_trend"]
        volume_ok = bar.volume > self.vol_mult * ind["vol_ma"]
        momentum_ok = ind["macd_hist"] > 0 and ind["rsi"] > self.rsi_min
        if not (breakout and trend_ok and volume_ok and momentum_ok):
            return None
        return Signal(
            side=SignalSide.LONG,
            entry_price=bar.close,
            stop_price=bar.close - ind["atr"] * self.sl_atr_mult,
            take_profit_price=None,
            quantity=0.0,
            timestamp=bar.time,
            metadata=dict(ind),
        )

    def late_exit_reason(self, position: Position, df: pd.DataFrame) -> Optional[str]:
        snap = self.snapshot(df)
        ema_exit = snap.value("ema_exit")
        if ema_exit is None:
            return None
        close = float(df.iloc[-1]["close"])
        if position.side == SignalSide.LONG and close < ema_exit:
            return "trend_exit"
        if position.side == SignalSide.SHORT and close > ema_exit:
            return "trend_exit"
        return None
