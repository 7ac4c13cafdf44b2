"""Core: config, types, errors, logging."""

from futures_agent.core.config import load_config, Config
from futures_agent.core.errors import AgentError, ConfigError, GatewayError, InvariantViolation
from futures_agent.core.types import (
    Bar,
    ExchangePosition,
    Fill,
    IndicatorSnapshot,
    InstrumentConstraints,
    Position,
    PositionState,
    Signal,
    SignalSide,
    Trade,
)
from futures_agent.core.logger import setup_logging

__all__ = [
    "load_config",
    "Config",
    "AgentError",
    "ConfigError",
    "GatewayError",
    "InvariantViolation",
    "Bar",
    "ExchangePosition",
    "Fill",
    "IndicatorSnapshot",
    "InstrumentConstraints",
    "Position",
    "PositionState",
    "Signal",
    "SignalSide",
    "Trade",
    "setup_logging",
]
