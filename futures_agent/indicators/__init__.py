"""Indicators: EMA, ATR, RSI, ADX, SMA/stddev/Bollinger, MACD and snapshots."""

from futures_agent.indicators.core import (
    adx,
    atr,
    bollinger,
    directional_movement,
    ema,
    macd,
    macd_histogram,
    rsi,
    sma,
    stddev,
    true_range,
)
from futures_agent.indicators.snapshot import build_snapshot

__all__ = [
    "adx",
    "atr",
    "bollinger",
    "directional_movement",
    "ema",
    "macd",
    "macd_histogram",
    "rsi",
    "sma",
    "stddev",
    "true_range",
    "build_snapshot",
]
