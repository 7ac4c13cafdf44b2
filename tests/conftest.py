"""Shared fixtures: bar frames, a scripted strategy, a fake exchange and a notification collector."""

from typing import List, Optional

import numpy as np
import pandas as pd
import pytest

from futures_agent.core.types import ExchangePosition, Fill, InstrumentConstraints, Signal, SignalSide
from futures_agent.execution.base import ExecutionClient, OrderResult
from futures_agent.strategies.base import BaseStrategy

# 2024-01-01 00:00 UTC, on a 15m boundary
START_MS = 1_704_067_200_000
MINUTE_MS = 60_000


def make_bars(closes, highs=None, lows=None, opens=None, volumes=None, start_ms=START_MS, interval_ms=15 * MINUTE_MS):
    """OHLCV frame; `time` is each bar's close time (open + interval - 1)."""
    closes = np.asarray(closes, dtype=float)
    n = len(closes)
    if opens is None:
        opens = np.concatenate([[closes[0]], closes[:-1]]) if n else closes
    return pd.DataFrame({
        "time": [start_ms + (i + 1) * interval_ms - 1 for i in range(n)],
        "open": np.asarray(opens, dtype=float),
        "high": np.asarray(highs if highs is not None else closes + 0.5, dtype=float),
        "low": np.asarray(lows if lows is not None else closes - 0.5, dtype=float),
        "close": closes,
        "volume": np.asarray(volumes if volumes is not None else np.full(n, 100.0), dtype=float),
    })


def bar_frame(time_ms: int, open_: float, high: float, low: float, close: float, atr: float = 1.0) -> pd.DataFrame:
    """One-row frame with an atr column, as the lifecycle manager sees it."""
    return pd.DataFrame([{
        "time": time_ms, "open": open_, "high": high, "low": low, "close": close, "volume": 1.0, "atr": atr,
    }])


class Collector:
    """Notification sink that records every message."""

    def __init__(self):
        self.messages: List[str] = []

    def notify(self, text: str) -> None:
        self.messages.append(text)

    def matching(self, fragment: str) -> List[str]:
        return [m for m in self.messages if fragment in m]


class ScriptedStrategy(BaseStrategy):
    """Returns whatever signal the test queued for the next bar."""

    name = "scripted"
    indicator_columns = ("atr",)

    def __init__(self, partial_take_profit=False, uses_trailing_stop=False, atr=1.0):
        self.partial_take_profit = partial_take_profit
        self.uses_trailing_stop = uses_trailing_stop
        self.atr_value = atr
        self.next_signal: Optional[Signal] = None
        self.exit_on_next: Optional[str] = None

    def compute_indicators(self, df):
        df = df.copy()
        df["atr"] = self.atr_value
        return df

    def get_signal(self, df):
        sig, self.next_signal = self.next_signal, None
        return sig

    def exit_reason(self, position, df):
        reason, self.exit_on_next = self.exit_on_next, None
        return reason


class FakeExchange(ExecutionClient):
    """In-memory gateway for tests; records calls and can be told to fail."""

    def __init__(self, klines: Optional[pd.DataFrame] = None, price: float = 100.0):
        self.klines = klines if klines is not None else make_bars([])
        self.price = price
        self.position: Optional[ExchangePosition] = None
        self.fills: List[Fill] = []
        self.constraints = InstrumentConstraints()
        self.calls: List[tuple] = []
        self.fail_on: set = set()
        self.raise_on_klines: Optional[Exception] = None

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail_on:
            from futures_agent.core.errors import GatewayError
            raise GatewayError(f"{name} failed")

    def get_klines(self, symbol, interval, limit=1000):
        self.calls.append(("get_klines", symbol, interval, limit))
        if self.raise_on_klines is not None:
            raise self.raise_on_klines
        return self.klines.tail(limit).reset_index(drop=True)

    def get_price(self, symbol):
        return self.price

    def get_open_position(self, symbol):
        return self.position

    def fetch_recent_fills(self, symbol, limit=50):
        return self.fills[-limit:]

    def place_market_order(self, symbol, side, quantity, reduce_only=False):
        self._record("place_market_order", side, quantity, reduce_only)
        return OrderResult(success=True, order_id="1", avg_price=self.price, quantity=quantity)

    def place_stop_order(self, symbol, side, quantity, stop_price):
        self._record("place_stop_order", side, quantity, stop_price)
        return OrderResult(success=True, order_id="2", quantity=quantity)

    def place_take_profit_order(self, symbol, side, quantity, price):
        self._record("place_take_profit_order", side, quantity, price)
        return OrderResult(success=True, order_id="3", quantity=quantity)

    def cancel_open_orders(self, symbol):
        self._record("cancel_open_orders")

    def set_leverage(self, symbol, leverage):
        self._record("set_leverage", leverage)

    def get_instrument_constraints(self, symbol):
        return self.constraints


def long_signal(entry=100.0, stop=98.0, tp1=None, tp2=None, time_ms=START_MS):
    return Signal(
        side=SignalSide.LONG, entry_price=entry, stop_price=stop, take_profit_price=tp1,
        quantity=0.0, timestamp=time_ms, take_profit_2=tp2,
    )


@pytest.fixture
def collector():
    return Collector()


@pytest.fixture
def uptrend_pullback_frame():
    """
    300 bars rising by 1 per bar with a tight range; the last bar dips through
    EMA50 and closes back above it.
    """
    n = 300
    closes = 100.0 + np.arange(n, dtype=float)
    highs = closes + 0.5
    lows = closes - 0.5
    lows[-1] = closes[-1] - 30.0
    return make_bars(closes, highs=highs, lows=lows)
