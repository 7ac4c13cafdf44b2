"""Abstract execution interface: market data, account state and order placement."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import pandas as pd

from futures_agent.core.errors import GatewayError
from futures_agent.core.types import ExchangePosition, Fill, InstrumentConstraints, Signal, SignalSide


@dataclass
class OrderResult:
    """Result of placing an order (or batch)."""
    success: bool
    order_id: Optional[str] = None
    avg_price: Optional[float] = None
    quantity: Optional[float] = None
    message: str = ""


class ExecutionClient(ABC):
    """
    Exchange gateway. Every call raises GatewayError on failure; callers report
    it and move on, nothing here retries an order.
    """

    @abstractmethod
    def get_klines(self, symbol: str, interval: str, limit: int = 1000) -> pd.DataFrame:
        """OHLCV DataFrame with columns: time (close time, ms), open, high, low, close, volume."""

    @abstractmethod
    def get_price(self, symbol: str) -> float:
        """Last traded price."""

    @abstractmethod
    def get_open_position(self, symbol: str) -> Optional[ExchangePosition]:
        """Current open position for symbol, or None."""

    @abstractmethod
    def fetch_recent_fills(self, symbol: str, limit: int = 50) -> List[Fill]:
        """Recent account fills with realised PnL, oldest first."""

    @abstractmethod
    def place_market_order(
        self, symbol: str, side: SignalSide, quantity: float, reduce_only: bool = False
    ) -> OrderResult:
        """Market order; side is the order side (BUY/SELL)."""

    @abstractmethod
    def place_stop_order(self, symbol: str, side: SignalSide, quantity: float, stop_price: float) -> OrderResult:
        """Reduce-only stop-market order."""

    @abstractmethod
    def place_take_profit_order(self, symbol: str, side: SignalSide, quantity: float, price: float) -> OrderResult:
        """Reduce-only take-profit-market order."""

    @abstractmethod
    def cancel_open_orders(self, symbol: str) -> None:
        """Cancel every working order for symbol."""

    @abstractmethod
    def set_leverage(self, symbol: str, leverage: int) -> None:
        """Set leverage for symbol."""

    @abstractmethod
    def get_instrument_constraints(self, symbol: str) -> InstrumentConstraints:
        """Lot step, min quantity, min notional, precision and tick."""

    def protect(
        self,
        symbol: str,
        side: SignalSide,
        quantity: float,
        stop_price: Optional[float],
        take_profit: Optional[float],
    ) -> List[str]:
        """
        Place reduce-only stop and take-profit orders for a position of `side`.
        Returns the failures as messages instead of raising: the position exists either way.
        """
        problems = []
        close_side = side.opposite
        if stop_price is not None:
            try:
                self.place_stop_order(symbol, close_side, quantity, stop_price)
            except GatewayError as e:
                problems.append(f"stop order failed: {e}")
        if take_profit is not None:
            try:
                self.place_take_profit_order(symbol, close_side, quantity, take_profit)
            except GatewayError as e:
                problems.append(f"take-profit order failed: {e}")
        return problems

    def place_market_and_sl_tp(self, symbol: str, signal: Signal) -> OrderResult:
        """Market entry, then protective stop and final target. Raises only if the entry fails."""
        res = self.place_market_order(symbol, signal.side, signal.quantity)
        target = signal.take_profit_2 if signal.take_profit_2 is not None else signal.take_profit_price
        problems = self.protect(symbol, signal.side, signal.quantity, signal.stop_price, target)
        res.message = "; ".join(problems)
        return res

    def close_position(self, symbol: str, side: SignalSide, quantity: float) -> OrderResult:
        """Reduce-only market order closing `quantity` of a position of `side`."""
        return self.place_market_order(symbol, side.opposite, quantity, reduce_only=True)
