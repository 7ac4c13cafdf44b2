"""
Indicator engine: pure functions over OHLCV frames.

Every function returns a Series (or DataFrame) aligned index-for-index with its
input. Positions before the warm-up window are NaN; nothing is carried between
calls, so callers pass the full lookback every time.

Warm-up (first defined index):
  ema(p, seed="sma")  p-1        ema(p, seed="first")  0
  atr(p), rsi(p)      p          adx(p)                2p-1
  sma/stddev/bollinger(p)  p-1
"""

from __future__ import annotations
from typing import Sequence, Union

import numpy as np
import pandas as pd

SeriesLike = Union[pd.Series, Sequence[float], np.ndarray]

EMA_SEEDS = ("sma", "first")


def _as_series(values: SeriesLike) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float)
    return pd.Series(np.asarray(values, dtype=float))


def _check_period(period: int) -> None:
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")


def ema(values: SeriesLike, period: int, seed: str = "sma") -> pd.Series:
    """
    Exponential moving average, k = 2/(period+1).
    seed="sma": first value is the simple average of the first `period` defined inputs.
    seed="first": first defined input seeds the recurrence.
    Leading NaNs in the input are skipped.
    """
    _check_period(period)
    if seed not in EMA_SEEDS:
        raise ValueError(f"Unknown EMA seed {seed!r}")
    s = _as_series(values)
    arr = s.to_numpy(dtype=float)
    out = np.full(len(arr), np.nan)
    defined = np.flatnonzero(~np.isnan(arr))
    if len(defined) == 0:
        return pd.Series(out, index=s.index)
    start = int(defined[0])
    if seed == "sma":
        first = start + period - 1
        if first >= len(arr):
            return pd.Series(out, index=s.index)
        out[first] = arr[start:first + 1].mean()
    else:
        first = start
        out[first] = arr[first]
    k = 2.0 / (period + 1.0)
    for i in range(first + 1, len(arr)):
        out[i] = arr[i] * k + out[i - 1] * (1.0 - k)
    return pd.Series(out, index=s.index)


def sma(values: SeriesLike, period: int) -> pd.Series:
    _check_period(period)
    return _as_series(values).rolling(period).mean()


def stddev(values: SeriesLike, period: int) -> pd.Series:
    """Rolling population standard deviation."""
    _check_period(period)
    return _as_series(values).rolling(period).std(ddof=0)


def bollinger(values: SeriesLike, period: int = 20, mult: float = 2.0) -> pd.DataFrame:
    """Bollinger bands: middle = SMA, upper/lower = SMA +/- mult * stddev."""
    middle = sma(values, period)
    dev = stddev(values, period)
    return pd.DataFrame({
        "middle": middle,
        "upper": middle + mult * dev,
        "lower": middle - mult * dev,
    })


def true_range(df: pd.DataFrame) -> pd.Series:
    """max(high-low, |high-prev_close|, |low-prev_close|); undefined on the first bar."""
    high_low = df["high"] - df["low"]
    high_close = (df["high"] - df["close"].shift()).abs()
    low_close = (df["low"] - df["close"].shift()).abs()
    tr = pd.concat([high_low, high_close, low_close], axis=1).max(axis=1).astype(float)
    if len(tr):
        tr.iloc[0] = np.nan
    return tr


def _wilder(values: np.ndarray, period: int, first: int) -> np.ndarray:
    """Seed at `first` with the mean of the preceding `period` values, then Wilder-smooth."""
    out = np.full(len(values), np.nan)
    if first >= len(values):
        return out
    out[first] = values[first - period + 1:first + 1].mean()
    for i in range(first + 1, len(values)):
        out[i] = (out[i - 1] * (period - 1) + values[i]) / period
    return out


def atr(df: pd.DataFrame, period: int = 14) -> pd.Series:
    """Average true range, SMA seed over TR[1..period], Wilder smoothing after."""
    _check_period(period)
    tr = true_range(df).to_numpy(dtype=float)
    return pd.Series(_wilder(tr, period, period), index=df.index)


def rsi(closes: SeriesLike, period: int = 14) -> pd.Series:
    """Wilder RSI. avg_loss == 0 gives 100."""
    _check_period(period)
    s = _as_series(closes)
    delta = s.diff().to_numpy(dtype=float)
    gains = np.where(delta > 0, delta, 0.0)
    losses = np.where(delta < 0, -delta, 0.0)
    gains[:1] = np.nan
    losses[:1] = np.nan
    avg_gain = _wilder(gains, period, period)
    avg_loss = _wilder(losses, period, period)
    out = np.full(len(s), np.nan)
    for i in range(period, len(s)):
        if avg_loss[i] == 0:
            out[i] = 100.0
        else:
            out[i] = 100.0 - 100.0 / (1.0 + avg_gain[i] / avg_loss[i])
    return pd.Series(out, index=s.index)


def directional_movement(df: pd.DataFrame, period: int = 14) -> pd.DataFrame:
    """
    +DI, -DI, DX and ADX.

    +DM counts only when the up-move is positive and larger than the down-move
    (and vice versa). TR/+DM/-DM are Wilder-smoothed from index `period`; ADX
    is the Wilder average of DX seeded over its first `period` values.
    """
    _check_period(period)
    n = len(df)
    high = df["high"].to_numpy(dtype=float)
    low = df["low"].to_numpy(dtype=float)
    tr = true_range(df).to_numpy(dtype=float)

    plus_dm = np.full(n, np.nan)
    minus_dm = np.full(n, np.nan)
    for i in range(1, n):
        up = high[i] - high[i - 1]
        down = low[i - 1] - low[i]
        plus_dm[i] = up if (up > down and up > 0) else 0.0
        minus_dm[i] = down if (down > up and down > 0) else 0.0

    s_tr = _wilder(tr, period, period)
    s_plus = _wilder(plus_dm, period, period)
    s_minus = _wilder(minus_dm, period, period)

    plus_di = np.full(n, np.nan)
    minus_di = np.full(n, np.nan)
    dx = np.full(n, np.nan)
    for i in range(period, n):
        if s_tr[i] > 0:
            plus_di[i] = 100.0 * s_plus[i] / s_tr[i]
            minus_di[i] = 100.0 * s_minus[i] / s_tr[i]
        else:
            plus_di[i] = 0.0
            minus_di[i] = 0.0
        di_sum = plus_di[i] + minus_di[i]
        dx[i] = 100.0 * abs(plus_di[i] - minus_di[i]) / di_sum if di_sum > 0 else 0.0

    adx_arr = _wilder(dx, period, 2 * period - 1)
    return pd.DataFrame(
        {"plus_di": plus_di, "minus_di": minus_di, "dx": dx, "adx": adx_arr},
        index=df.index,
    )


def adx(df: pd.DataFrame, period: int = 14) -> pd.Series:
    return directional_movement(df, period)["adx"]


def macd(closes: SeriesLike, fast: int = 12, slow: int = 26, signal: int = 9, seed: str = "sma") -> pd.DataFrame:
    """MACD line, signal line (EMA over the defined part of the line) and histogram."""
    s = _as_series(closes)
    line = ema(s, fast, seed) - ema(s, slow, seed)
    signal_line = ema(line, signal, seed)
    return pd.DataFrame({"macd": line, "signal": signal_line, "hist": line - signal_line}, index=s.index)


def macd_histogram(closes: SeriesLike, fast: int = 12, slow: int = 26, signal: int = 9, seed: str = "sma") -> pd.Series:
    return macd(closes, fast, slow, signal, seed)["hist"]
