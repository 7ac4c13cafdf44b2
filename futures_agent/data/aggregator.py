"""
Bar aggregation: resample a fine timeframe (e.g. 5m) into a coarser one (e.g. 15m)
by grouping fixed-size consecutive runs.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

BAR_COLUMNS = ["time", "open", "high", "low", "close", "volume"]


def aggregate(bars: pd.DataFrame, factor: int) -> pd.DataFrame:
    """
    Group disjoint runs of `factor` bars from the start; a trailing partial run is dropped.
    time = last member, open = first, high/low = extrema, close = last, volume = sum.
    """
    if factor < 1:
        raise ValueError(f"factor must be >= 1, got {factor}")
    n_groups = len(bars) // factor
    if n_groups == 0:
        return pd.DataFrame(columns=BAR_COLUMNS)
    used = bars.iloc[: n_groups * factor][BAR_COLUMNS].reset_index(drop=True)
    if factor == 1:
        return used.copy()
    groups = np.arange(len(used)) // factor
    grouped = used.groupby(groups)
    out = pd.DataFrame({
        "time": grouped["time"].last(),
        "open": grouped["open"].first(),
        "high": grouped["high"].max(),
        "low": grouped["low"].min(),
        "close": grouped["close"].last(),
        "volume": grouped["volume"].sum(),
    })
    return out.reset_index(drop=True)


def closed_bars(bars: pd.DataFrame, now_ms: int) -> pd.DataFrame:
    """Drop bars whose close time has not passed (the exchange returns the forming kline last)."""
    return bars[bars["time"] < now_ms].reset_index(drop=True)


def align_start(bars: pd.DataFrame, base_ms: int, factor: int) -> pd.DataFrame:
    """
    Drop leading bars until the first one opens on a `factor * base_ms` boundary,
    so groups from aggregate() stay on the same wall-clock periods as the window slides.
    """
    if factor <= 1 or bars.empty:
        return bars.reset_index(drop=True)
    period = base_ms * factor
    open_times = bars["time"].astype("int64") - base_ms + 1
    aligned = (open_times % period) == 0
    if not aligned.any():
        return bars.iloc[0:0].reset_index(drop=True)
    first = int(np.argmax(aligned.to_numpy()))
    return bars.iloc[first:].reset_index(drop=True)
