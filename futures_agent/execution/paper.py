"""
Paper execution: real market data, simulated orders.

Market orders fill immediately at the last price into an in-process position;
fills carry realised PnL so reconciliation reads the same shapes as on the
exchange. Stop and take-profit orders are recorded but never triggered: exits
are driven by the lifecycle manager.
"""

from __future__ import annotations
import itertools
import logging
import time
from typing import Callable, List, Optional

import pandas as pd

from futures_agent.core.types import ExchangePosition, Fill, InstrumentConstraints, SignalSide
from futures_agent.execution.base import ExecutionClient, OrderResult

logger = logging.getLogger("futures_agent.execution.paper")


class PaperExecutionClient(ExecutionClient):

    def __init__(
        self,
        market_data: ExecutionClient,
        leverage: int = 1,
        clock: Callable[[], float] = time.time,
    ):
        self._market = market_data
        self._leverage = leverage
        self._clock = clock
        self._position: Optional[ExchangePosition] = None
        self._fills: List[Fill] = []
        self._working: List[dict] = []
        self._ids = itertools.count(1)

    # Market data goes to the real exchange
    def get_klines(self, symbol: str, interval: str, limit: int = 1000) -> pd.DataFrame:
        return self._market.get_klines(symbol, interval, limit)

    def get_price(self, symbol: str) -> float:
        return self._market.get_price(symbol)

    def get_instrument_constraints(self, symbol: str) -> InstrumentConstraints:
        return self._market.get_instrument_constraints(symbol)

    # Simulated account
    def get_open_position(self, symbol: str) -> Optional[ExchangePosition]:
        return self._position

    def fetch_recent_fills(self, symbol: str, limit: int = 50) -> List[Fill]:
        return self._fills[-limit:]

    def set_leverage(self, symbol: str, leverage: int) -> None:
        self._leverage = leverage
        logger.info("Paper leverage set to %sx for %s", leverage, symbol)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def place_market_order(
        self, symbol: str, side: SignalSide, quantity: float, reduce_only: bool = False
    ) -> OrderResult:
        price = self.get_price(symbol)
        pos = self._position
        realized = 0.0
        if pos is None:
            if not reduce_only:
                self._position = ExchangePosition(symbol, side, quantity, price, leverage=self._leverage)
        elif pos.side == side:
            if not reduce_only:
                total = pos.quantity + quantity
                pos.entry_price = (pos.entry_price * pos.quantity + price * quantity) / total
                pos.quantity = total
        else:
            closed = min(quantity, pos.quantity)
            realized = (price - pos.entry_price) * closed * pos.side.direction
            pos.quantity -= closed
            if pos.quantity <= 1e-12:
                self._position = None
                self._working.clear()
        self._fills.append(Fill(time=self._now_ms(), realized_pnl=realized, price=price, quantity=quantity, side=side))
        order_id = str(next(self._ids))
        logger.info("Paper market %s %s qty=%s @ %.6f", side.value, symbol, quantity, price)
        return OrderResult(success=True, order_id=order_id, avg_price=price, quantity=quantity)

    def place_stop_order(self, symbol: str, side: SignalSide, quantity: float, stop_price: float) -> OrderResult:
        order_id = str(next(self._ids))
        self._working.append({"id": order_id, "type": "STOP_MARKET", "side": side, "qty": quantity, "price": stop_price})
        return OrderResult(success=True, order_id=order_id, quantity=quantity)

    def place_take_profit_order(self, symbol: str, side: SignalSide, quantity: float, price: float) -> OrderResult:
        order_id = str(next(self._ids))
        self._working.append({"id": order_id, "type": "TAKE_PROFIT_MARKET", "side": side, "qty": quantity, "price": price})
        return OrderResult(success=True, order_id=order_id, quantity=quantity)

    def cancel_open_orders(self, symbol: str) -> None:
        self._working.clear()

    @property
    def working_orders(self) -> List[dict]:
        return list(self._working)
