"""Strategies: base interface, entry policies, evaluator."""

from futures_agent.strategies.base import BaseStrategy
from futures_agent.strategies.band_breakout import BandBreakoutStrategy
from futures_agent.strategies.ema_crossover import EmaCrossoverStrategy
from futures_agent.strategies.ema_pullback import EmaPullbackStrategy
from futures_agent.strategies.evaluator import SignalEvaluator
from futures_agent.strategies.factory import build_evaluator, build_strategy

__all__ = [
    "BaseStrategy",
    "BandBreakoutStrategy",
    "EmaCrossoverStrategy",
    "EmaPullbackStrategy",
    "SignalEvaluator",
    "build_evaluator",
    "build_strategy",
]
