"""
Trading runner: the periodic trading and status ticks around one PositionManager.

Both ticks share a non-reentrant guard; a tick that finds the guard held is
skipped. Every tick is fault-isolated so one failure never stops the loop.
"""

from __future__ import annotations
import logging
import threading
import time
from typing import Callable, List, Optional

import pandas as pd

from futures_agent.analytics.metrics import trade_metrics
from futures_agent.core.errors import GatewayError, InvariantViolation
from futures_agent.data.aggregator import aggregate, align_start, closed_bars
from futures_agent.execution.base import ExecutionClient
from futures_agent.lifecycle.manager import PositionManager
from futures_agent.runtime.drivers import PeriodicDriver
from futures_agent.runtime.reporting import digest_text, startup_text
from futures_agent.utils.timeframes import timeframe_minutes, working_timeframe

logger = logging.getLogger("futures_agent.runtime")


class TradingRunner:

    def __init__(
        self,
        manager: PositionManager,
        execution: ExecutionClient,
        notifier=None,
        base_interval: str = "5m",
        aggregation_factor: int = 3,
        kline_limit: int = 1000,
        live: bool = False,
        testnet: bool = True,
        leverage: int = 1,
        digest_minutes: float = 60,
        utc_offset_hours: float = 0.0,
        clock: Callable[[], float] = time.time,
    ):
        self.manager = manager
        self.execution = execution
        self.notifier = notifier
        self.symbol = manager.symbol
        self.base_interval = base_interval
        self.aggregation_factor = aggregation_factor
        self.kline_limit = kline_limit
        self.live = live
        self.testnet = testnet
        self.leverage = leverage
        self.digest_seconds = digest_minutes * 60
        self.utc_offset_hours = utc_offset_hours
        self._clock = clock
        self._base_ms = timeframe_minutes(base_interval) * 60_000
        self._guard = threading.Lock()
        self._last_digest = clock()
        self._last_atr: Optional[float] = None
        self._drivers: List[PeriodicDriver] = []
        self._stop_event = threading.Event()

    @property
    def timeframe(self) -> str:
        return working_timeframe(self.base_interval, self.aggregation_factor)

    def _notify(self, text: str) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(text)
        except Exception:
            logger.exception("Notification failed")

    def _guarded(self, name: str, step: Callable[[], None]) -> bool:
        """Run `step` under the tick guard. False if skipped or failed."""
        if not self._guard.acquire(blocking=False):
            logger.info("%s tick skipped: another tick is still running", name)
            return False
        try:
            step()
            return True
        except InvariantViolation as e:
            logger.critical("%s tick: state conflict: %s", name, e)
            self._notify(f"CRITICAL {self.symbol}: {e}\nManual check required.")
        except GatewayError as e:
            logger.exception("%s tick: gateway error", name)
            self._notify(f"{self.symbol} {name} error: {e}")
        except Exception as e:
            logger.exception("%s tick failed", name)
            self._notify(f"{self.symbol} {name} error: {e}")
        finally:
            self._guard.release()
        return False

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def startup(self) -> bool:
        return self._guarded("startup", self._startup)

    def trading_tick(self) -> bool:
        return self._guarded("trading", self._trading_step)

    def status_tick(self) -> bool:
        return self._guarded("status", self._status_step)

    def _startup(self) -> None:
        constraints = self.execution.get_instrument_constraints(self.symbol)
        self.manager.risk_manager.update_constraints(constraints)
        if self.live:
            self.execution.set_leverage(self.symbol, self.leverage)
        self.manager.reconcile(self.execution.get_open_position(self.symbol))
        self._notify(startup_text(
            self.symbol,
            self.manager.strategy.name,
            self.timeframe,
            "live" if self.live else "paper",
            self.manager.account.balance,
            self.leverage,
            self.testnet,
        ))

    def working_bars(self) -> pd.DataFrame:
        """Fetch base klines and return closed working-timeframe bars."""
        raw = self.execution.get_klines(self.symbol, self.base_interval, self.kline_limit)
        bars = closed_bars(raw, int(self._clock() * 1000))
        bars = align_start(bars, self._base_ms, self.aggregation_factor)
        return aggregate(bars, self.aggregation_factor)

    def _trading_step(self) -> None:
        df = self.working_bars()
        if len(df) < self.manager.evaluator.min_history_bars:
            logger.info("Not enough %s bars: %d", self.timeframe, len(df))
            return
        if int(df["time"].iloc[-1]) <= self.manager.last_processed_bar_time:
            return
        df = self.manager.strategy.compute_indicators(df)
        self._last_atr = self.manager.strategy.snapshot(df).value("atr")
        self.manager.reconcile(self.execution.get_open_position(self.symbol), atr=self._last_atr)
        self.manager.process_bar(df)

    def _status_step(self) -> None:
        self.manager.reconcile(self.execution.get_open_position(self.symbol), atr=self._last_atr)
        now = self._clock()
        if now - self._last_digest >= self.digest_seconds:
            self._last_digest = now
            price = self.execution.get_price(self.symbol)
            status = self.manager.status()
            metrics = trade_metrics(self.manager.trades, self.manager.account.day_start_balance)
            self._notify(digest_text(status, price, metrics, int(now * 1000), self.utc_offset_hours))

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def start(self, poll_seconds: float, reconcile_seconds: float) -> None:
        self.startup()
        self._drivers = [
            PeriodicDriver("trading", poll_seconds, self.trading_tick),
            PeriodicDriver("status", reconcile_seconds, self.status_tick, run_immediately=False),
        ]
        for d in self._drivers:
            d.start()

    def stop(self) -> None:
        for d in self._drivers:
            d.stop()
        self._stop_event.set()

    def run_forever(self, poll_seconds: float, reconcile_seconds: float) -> None:
        self.start(poll_seconds, reconcile_seconds)
        try:
            while not self._stop_event.wait(1.0):
                pass
        except KeyboardInterrupt:
            logger.info("Shutdown by user")
            self._notify(f"Futures agent stopped ({self.symbol}).")
        finally:
            self.stop()
