"""Build an IndicatorSnapshot from indicator columns of a bar frame."""

from __future__ import annotations
import math
from typing import Iterable

import pandas as pd

from futures_agent.core.types import IndicatorSnapshot


def build_snapshot(df: pd.DataFrame, columns: Iterable[str], index: int = -1) -> IndicatorSnapshot:
    """
    Read `columns` at row `index` (positional). Missing columns and NaN/inf
    values become None.
    """
    pos = index if index >= 0 else len(df) + index
    if pos < 0 or pos >= len(df):
        raise IndexError(f"bar index {index} out of range for {len(df)} bars")
    row = df.iloc[pos]
    values = {}
    for name in columns:
        raw = row.get(name) if name in df.columns else None
        if raw is None or pd.isna(raw) or not math.isfinite(float(raw)):
            values[name] = None
        else:
            values[name] = float(raw)
    return IndicatorSnapshot(index=pos, time=int(row["time"]), values=values)
