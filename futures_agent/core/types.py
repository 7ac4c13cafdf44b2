"""
Core data types: bars, indicator snapshots, signals, positions, fills and trades.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


class SignalSide(str, Enum):
    LONG = "BUY"
    SHORT = "SELL"

    @property
    def direction(self) -> int:
        """+1 for long, -1 for short (PnL sign)."""
        return 1 if self is SignalSide.LONG else -1

    @property
    def opposite(self) -> "SignalSide":
        return SignalSide.SHORT if self is SignalSide.LONG else SignalSide.LONG


class PositionState(str, Enum):
    FLAT = "FLAT"
    OPEN = "OPEN"
    PARTIAL = "PARTIAL"
    COOLDOWN = "COOLDOWN"


@dataclass(frozen=True)
class Bar:
    """OHLCV candle. `time` is the close time in epoch milliseconds."""
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Bar":
        return cls(
            time=int(row["time"]),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row["volume"]),
        )


@dataclass
class IndicatorSnapshot:
    """
    Indicator values for one bar. A value of None means the indicator has not
    warmed up yet; callers must skip evaluation rather than read it as zero.
    """
    index: int
    time: int
    values: dict = field(default_factory=dict)

    def value(self, name: str) -> Optional[float]:
        return self.values.get(name)

    def is_defined(self, *names: str) -> bool:
        return all(self.values.get(n) is not None for n in names)


@dataclass
class Signal:
    """Entry signal with stop and targets. quantity is 0 until sized by the risk manager."""
    side: SignalSide
    entry_price: float
    stop_price: Optional[float]
    take_profit_price: Optional[float]
    quantity: float
    timestamp: int
    take_profit_2: Optional[float] = None
    metadata: dict = field(default_factory=dict)


@dataclass
class Position:
    """The single position managed by the lifecycle manager."""
    symbol: str
    side: SignalSide
    quantity: float
    entry_price: float
    opened_at: int
    stop_price: Optional[float] = None
    trailing_stop: Optional[float] = None
    take_profit_price: Optional[float] = None
    take_profit_2: Optional[float] = None
    partial_exit_taken: bool = False
    bars_held: int = 0
    notional: float = 0.0
    maintenance_margin: float = 0.0
    leverage: int = 1
    extreme_price: Optional[float] = None
    external: bool = False
    initial_quantity: float = 0.0
    realized_pnl: float = 0.0
    fees_paid: float = 0.0

    def effective_stop(self) -> Optional[float]:
        """Tighter of the fixed stop and the trailing stop."""
        stops = [s for s in (self.stop_price, self.trailing_stop) if s is not None]
        if not stops:
            return None
        return max(stops) if self.side == SignalSide.LONG else min(stops)

    def unrealized_pnl(self, price: float) -> float:
        return (price - self.entry_price) * self.quantity * self.side.direction


@dataclass
class ExchangePosition:
    """Position as reported by the exchange."""
    symbol: str
    side: SignalSide
    quantity: float
    entry_price: float
    unrealized_pnl: float = 0.0
    leverage: int = 1


@dataclass
class Fill:
    """Account trade (fill) with realised PnL."""
    time: int
    realized_pnl: float
    price: float = 0.0
    quantity: float = 0.0
    side: Optional[SignalSide] = None


@dataclass
class InstrumentConstraints:
    """Lot and tick filters for a symbol."""
    quantity_step: float = 0.001
    min_quantity: float = 0.001
    min_notional: float = 5.0
    quantity_precision: int = 3
    price_tick: float = 0.01


@dataclass
class Trade:
    """Closed trade for the digest."""
    symbol: str
    side: SignalSide
    quantity: float
    entry_price: float
    exit_price: Optional[float]  # None when closed outside the agent with no matching fill
    pnl: float
    entry_time: int
    exit_time: int
    exit_reason: str  # "stop_loss" | "take_profit" | "trailing_stop" | "reversal" | "trend_exit" | "time_exit" | "external"
    fees: float = 0.0
