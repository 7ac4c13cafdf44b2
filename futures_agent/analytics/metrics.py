"""
Trade statistics for reports: win rate, profit factor, expectancy, max drawdown.
Computed from closed-trade PnLs (net of fees).
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from futures_agent.core.types import Trade


@dataclass
class PerformanceMetrics:
    """Aggregate statistics over closed trades."""
    total_pnl: float
    total_return_pct: float
    max_drawdown_pct: float
    win_rate: float
    profit_factor: float
    expectancy: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    avg_win: float
    avg_loss: float


def max_drawdown(equity: Sequence[float]) -> float:
    """Max drawdown of an equity curve in percent (negative, e.g. -15.0)."""
    if len(equity) == 0:
        return 0.0
    arr = np.asarray(equity, dtype=float)
    peak = np.maximum.accumulate(arr)
    dd = (arr - peak) / np.where(peak != 0, peak, 1)
    return float(np.min(dd)) * 100.0


def win_rate(pnls: List[float]) -> float:
    """Fraction of trades with positive PnL."""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: List[float]) -> float:
    """Gross profit / gross loss. inf if there are wins and no losses."""
    wins = sum(p for p in pnls if p > 0)
    losses = sum(-p for p in pnls if p < 0)
    if losses <= 0:
        return float("inf") if wins > 0 else 0.0
    return wins / losses


def expectancy(pnls: List[float]) -> float:
    """Average PnL per trade."""
    if not pnls:
        return 0.0
    return sum(pnls) / len(pnls)


def compute_metrics(pnls: List[float], initial_balance: float = 100.0) -> PerformanceMetrics:
    """Metrics from trade PnLs; the equity curve starts at initial_balance."""
    if not pnls:
        return PerformanceMetrics(
            total_pnl=0.0, total_return_pct=0.0, max_drawdown_pct=0.0,
            win_rate=0.0, profit_factor=0.0, expectancy=0.0,
            total_trades=0, winning_trades=0, losing_trades=0, avg_win=0.0, avg_loss=0.0,
        )
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    equity = initial_balance + np.cumsum([0.0] + list(pnls))
    total = float(sum(pnls))
    return PerformanceMetrics(
        total_pnl=total,
        total_return_pct=total / initial_balance * 100.0 if initial_balance else 0.0,
        max_drawdown_pct=max_drawdown(equity),
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        expectancy=expectancy(pnls),
        total_trades=len(pnls),
        winning_trades=len(wins),
        losing_trades=len(losses),
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
    )


def trade_metrics(trades: Sequence[Trade], initial_balance: float = 100.0) -> PerformanceMetrics:
    return compute_metrics([t.pnl for t in trades], initial_balance)
