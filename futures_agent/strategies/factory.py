"""Build the configured entry policy and its signal evaluator."""

from __future__ import annotations
from typing import Optional

from futures_agent.core.config import Config
from futures_agent.core.errors import ConfigError
from futures_agent.core.types import InstrumentConstraints
from futures_agent.risk.manager import RiskManager
from futures_agent.strategies.band_breakout import BandBreakoutStrategy
from futures_agent.strategies.base import BaseStrategy
from futures_agent.strategies.ema_crossover import EmaCrossoverStrategy
from futures_agent.strategies.ema_pullback import EmaPullbackStrategy
from futures_agent.strategies.evaluator import SignalEvaluator


def build_strategy(config: Config) -> BaseStrategy:
    if config.policy == "ema_pullback":
        return EmaPullbackStrategy(
            ema_fast=config.ema_fast,
            ema_slow=config.ema_slow,
            atr_len=config.atr_len,
            adx_len=config.adx_len,
            adx_min=config.adx_min,
            sl_atr_mult=config.sl_atr_mult,
            rr_mult=config.rr_mult,
            ema_seed=config.ema_seed,
        )
    if config.policy == "ema_crossover":
        return EmaCrossoverStrategy(
            ema_fast=config.ema_fast,
            ema_slow=config.ema_slow,
            ema_trend=config.ema_trend,
            atr_len=config.atr_len,
            sl_atr_mult=config.sl_atr_mult,
            ema_seed=config.ema_seed,
        )
    if config.policy == "band_breakout":
        return BandBreakoutStrategy(
            bb_len=config.bb_len,
            bb_mult=config.bb_mult,
            atr_len=config.atr_len,
            ema_trend=config.ema_trend,
            ema_exit=config.ema_exit,
            vol_ma_len=config.vol_ma_len,
            vol_mult=config.vol_mult,
            breakout_atr_mult=config.breakout_atr_mult,
            macd_fast=config.macd_fast,
            macd_slow=config.macd_slow,
            macd_signal=config.macd_signal,
            rsi_len=config.rsi_len,
            rsi_min=config.rsi_min,
            sl_atr_mult=config.sl_atr_mult,
            ema_seed=config.ema_seed,
        )
    raise ConfigError(f"Unknown policy {config.policy!r}")


def build_evaluator(
    config: Config,
    strategy: Optional[BaseStrategy] = None,
    constraints: Optional[InstrumentConstraints] = None,
) -> SignalEvaluator:
    strategy = strategy or build_strategy(config)
    risk_manager = RiskManager(
        risk_per_trade=config.risk_per_trade,
        leverage=config.leverage,
        fee_rate=config.fee_rate,
        max_risk_fraction=config.max_risk_fraction,
        margin_fraction=config.margin_fraction,
        daily_loss_limit=config.daily_loss_limit,
        sizing=config.sizing or strategy.default_sizing,
        constraints=constraints,
    )
    return SignalEvaluator(strategy, risk_manager, min_history_bars=config.min_history_bars)
