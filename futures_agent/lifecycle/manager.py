"""
Position lifecycle: the single-position state machine.

FLAT -> OPEN -> (PARTIAL) -> closed -> COOLDOWN -> FLAT

process_bar() runs once per newly closed working-timeframe bar, in order:
  1. partial take-profit at TP1 (policies with partial_take_profit)
  2. full exit: stop (incl. trailing) before TP2, then policy reversal
  3. trailing stop ratchet
  4. time / trend exit
  5. new entry when flat, out of cooldown and under the daily loss limit
  6. cooldown decrement, peak balance refresh

reconcile() aligns local state with the position the exchange reports.
The account balance only moves on entry fees and realised PnL.
"""

from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional

import pandas as pd

from futures_agent.core.errors import GatewayError, InvariantViolation
from futures_agent.core.types import (
    Bar,
    ExchangePosition,
    Position,
    PositionState,
    Signal,
    SignalSide,
    Trade,
)
from futures_agent.execution.base import ExecutionClient
from futures_agent.strategies.evaluator import SignalEvaluator
from futures_agent.utils.exchange_filters import round_quantity

logger = logging.getLogger("futures_agent.lifecycle")

EXTERNAL_OPEN_AGE_MS = 3_600_000


@dataclass
class AccountState:
    balance: float
    peak_balance: float
    day_start_balance: float
    current_day: Optional[date] = None
    cooldown_bars_remaining: int = 0

    def refresh_peak(self) -> None:
        self.peak_balance = max(self.peak_balance, self.balance)


class PositionManager:
    """Owns the account state and the single position slot; all mutation goes through here."""

    def __init__(
        self,
        symbol: str,
        evaluator: SignalEvaluator,
        notifier=None,
        execution: Optional[ExecutionClient] = None,
        initial_balance: float = 100.0,
        fee_rate: float = 0.0004,
        leverage: int = 1,
        cooldown_bars: int = 0,
        max_hold_bars: int = 0,
        trailing_trigger_atr: float = 1.0,
        trailing_offset_atr: float = 1.5,
        sl_atr_mult: float = 1.6,
        maintenance_margin_rate: float = 0.005,
        utc_offset_hours: float = 0.0,
        fills_limit: int = 50,
        clock: Callable[[], float] = time.time,
    ):
        self.symbol = symbol
        self.evaluator = evaluator
        self.strategy = evaluator.strategy
        self.risk_manager = evaluator.risk_manager
        self.notifier = notifier
        self.execution = execution
        self.fee_rate = fee_rate
        self.leverage = leverage
        self.cooldown_bars = cooldown_bars
        self.max_hold_bars = max_hold_bars
        self.trailing_trigger_atr = trailing_trigger_atr
        self.trailing_offset_atr = trailing_offset_atr
        self.sl_atr_mult = sl_atr_mult
        self.maintenance_margin_rate = maintenance_margin_rate
        self.tz = timezone(timedelta(hours=utc_offset_hours))
        self.fills_limit = fills_limit
        self._clock = clock

        self.account = AccountState(initial_balance, initial_balance, initial_balance)
        self.position: Optional[Position] = None
        self.trades: List[Trade] = []
        self.last_processed_bar_time = 0
        self._halted_day: Optional[date] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> PositionState:
        if self.position is not None:
            return PositionState.PARTIAL if self.position.partial_exit_taken else PositionState.OPEN
        if self.account.cooldown_bars_remaining > 0:
            return PositionState.COOLDOWN
        return PositionState.FLAT

    @property
    def entries_halted(self) -> bool:
        return self._halted_day is not None and self._halted_day == self.account.current_day

    def status(self) -> dict:
        """Structured snapshot for the status endpoint and the digest."""
        with self._lock:
            pos = self.position
            return {
                "symbol": self.symbol,
                "policy": self.strategy.name,
                "state": self.state.value,
                "balance": round(self.account.balance, 8),
                "peak_balance": round(self.account.peak_balance, 8),
                "day_start_balance": round(self.account.day_start_balance, 8),
                "cooldown_bars_remaining": self.account.cooldown_bars_remaining,
                "entries_halted": self.entries_halted,
                "last_processed_bar_time": self.last_processed_bar_time,
                "closed_trades": len(self.trades),
                "position": None if pos is None else {
                    "side": pos.side.name,
                    "entry_price": pos.entry_price,
                    "quantity": pos.quantity,
                    "stop_price": pos.stop_price,
                    "trailing_stop": pos.trailing_stop,
                    "take_profit_price": pos.take_profit_price,
                    "take_profit_2": pos.take_profit_2,
                    "partial_exit_taken": pos.partial_exit_taken,
                    "bars_held": pos.bars_held,
                    "opened_at": pos.opened_at,
                    "notional": pos.notional,
                    "maintenance_margin": pos.maintenance_margin,
                    "external": pos.external,
                },
            }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _notify(self, text: str) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(text)
        except Exception:
            logger.exception("Notification failed")

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def format_time(self, ms: int) -> str:
        return datetime.fromtimestamp(ms / 1000, tz=self.tz).strftime("%Y-%m-%d %H:%M")

    def _roll_day(self, bar_time: int) -> None:
        day = datetime.fromtimestamp(bar_time / 1000, tz=self.tz).date()
        if day != self.account.current_day:
            self.account.current_day = day
            self.account.day_start_balance = self.account.balance
            logger.info("New day %s, day start balance %.2f", day, self.account.balance)

    def _margin(self, notional: float) -> float:
        return notional * self.maintenance_margin_rate

    def _half_quantity(self, qty: float) -> float:
        c = self.risk_manager.constraints
        half = round_quantity(qty / 2, 0.0, c.quantity_step, c.quantity_precision)
        return half if 0 < half < qty else qty / 2

    def _call_gateway(self, action: str, method: str, *args):
        """Run one gateway call; a GatewayError is reported and swallowed."""
        if self.execution is None:
            return None
        try:
            return getattr(self.execution, method)(*args)
        except GatewayError as e:
            logger.error("%s failed: %s", action, e)
            self._notify(f"{action} failed: {e}")
            return None

    def _reprotect(self, pos: Position) -> None:
        if self.execution is None:
            return
        self._call_gateway("Cancel orders", "cancel_open_orders", self.symbol)
        problems = self._call_gateway(
            "Protective orders", "protect",
            self.symbol, pos.side, pos.quantity, pos.effective_stop(), pos.take_profit_2,
        )
        for p in problems or []:
            self._notify(f"{self.symbol}: {p}")

    # ------------------------------------------------------------------
    # Bar processing
    # ------------------------------------------------------------------

    def process_bar(self, df: pd.DataFrame) -> bool:
        """
        Apply one closed bar (the last row of `df`, indicators already computed).
        Returns False if the bar was already processed.
        """
        with self._lock:
            if df.empty:
                return False
            bar = Bar.from_row(df.iloc[-1])
            if bar.time <= self.last_processed_bar_time:
                logger.debug("Bar %s already processed", bar.time)
                return False
            self.last_processed_bar_time = bar.time
            self._roll_day(bar.time)

            pos = self.position
            if pos is not None:
                pos.bars_held += 1
                self._manage(pos, bar, df)

            if self.position is None and self.account.cooldown_bars_remaining == 0:
                if not self._check_daily_breaker():
                    self._try_entry(bar, df)

            if self.account.cooldown_bars_remaining > 0:
                self.account.cooldown_bars_remaining -= 1
            self.account.refresh_peak()
            return True

    def _manage(self, pos: Position, bar: Bar, df: pd.DataFrame) -> None:
        long = pos.side == SignalSide.LONG

        if self.strategy.partial_take_profit and not pos.partial_exit_taken and pos.take_profit_price is not None:
            tp1 = pos.take_profit_price
            if (bar.high >= tp1) if long else (bar.low <= tp1):
                self._take_partial(pos, bar)

        # A bar's internal path is unknown: when both stop and target are inside
        # its range, the stop wins.
        stop = pos.effective_stop()
        if stop is not None and ((bar.low <= stop) if long else (bar.high >= stop)):
            reason = "stop_loss"
            if pos.trailing_stop is not None and stop == pos.trailing_stop and stop != pos.stop_price:
                reason = "trailing_stop"
            self._close(pos, stop, reason, bar)
            return
        tp2 = pos.take_profit_2
        if tp2 is not None and ((bar.high >= tp2) if long else (bar.low <= tp2)):
            self._close(pos, tp2, "take_profit", bar)
            return
        reason = self.strategy.exit_reason(pos, df)
        if reason:
            self._close(pos, bar.close, reason, bar)
            return

        if self.strategy.uses_trailing_stop:
            self._ratchet(pos, bar, self.strategy.snapshot(df).value("atr"))

        if self.max_hold_bars > 0 and pos.bars_held >= self.max_hold_bars:
            self._close(pos, bar.close, "time_exit", bar)
            return
        reason = self.strategy.late_exit_reason(pos, df)
        if reason:
            self._close(pos, bar.close, reason, bar)

    def _take_partial(self, pos: Position, bar: Bar) -> None:
        price = pos.take_profit_price
        half = self._half_quantity(pos.quantity)
        pnl = (price - pos.entry_price) * half * pos.side.direction
        fee = price * half * self.fee_rate
        if self.execution is not None:
            if self._call_gateway("Partial close", "close_position", self.symbol, pos.side, half) is None:
                # exchange still holds the full quantity; retry on the next bar
                return

        self.account.balance += pnl - fee
        pos.realized_pnl += pnl
        pos.fees_paid += fee
        pos.quantity -= half
        pos.partial_exit_taken = True
        pos.stop_price = pos.entry_price
        pos.notional = pos.quantity * pos.entry_price
        pos.maintenance_margin = self._margin(pos.notional)
        self._reprotect(pos)

        logger.info("TP1 hit %s: closed %.6f @ %.6f pnl=%.4f fee=%.4f", pos.side.name, half, price, pnl, fee)
        self._notify(
            f"TP1 HIT {pos.side.name} {self.symbol}\n"
            f"Closed {half:g} @ {price:.4f} | PnL: {pnl - fee:+.2f}\n"
            f"Stop moved to break-even {pos.stop_price:.4f}\n"
            f"Balance: {self.account.balance:.2f}"
        )

    def _close(self, pos: Position, price: float, reason: str, bar: Bar) -> None:
        qty = pos.quantity
        pnl = (price - pos.entry_price) * qty * pos.side.direction
        fee = price * qty * self.fee_rate
        self._call_gateway("Cancel orders", "cancel_open_orders", self.symbol)
        self._call_gateway("Close position", "close_position", self.symbol, pos.side, qty)

        self.account.balance += pnl - fee
        total_fees = pos.fees_paid + fee
        trade = Trade(
            symbol=self.symbol,
            side=pos.side,
            quantity=pos.initial_quantity or qty,
            entry_price=pos.entry_price,
            exit_price=price,
            pnl=pos.realized_pnl + pnl - total_fees,
            entry_time=pos.opened_at,
            exit_time=bar.time,
            exit_reason=reason,
            fees=total_fees,
        )
        self.trades.append(trade)
        self.position = None
        self.account.cooldown_bars_remaining = self.cooldown_bars

        logger.info("CLOSE %s %s @ %.6f reason=%s pnl=%.4f", pos.side.name, self.symbol, price, reason, trade.pnl)
        self._notify(
            f"CLOSE {pos.side.name} {self.symbol} ({reason})\n"
            f"Exit: {price:.4f} | Trade PnL: {trade.pnl:+.2f}\n"
            f"Balance: {self.account.balance:.2f}"
        )

    def _ratchet(self, pos: Position, bar: Bar, atr_value: Optional[float]) -> None:
        if atr_value is None or atr_value <= 0:
            return
        if pos.side == SignalSide.LONG:
            pos.extreme_price = max(pos.extreme_price or pos.entry_price, bar.high)
            excursion = pos.extreme_price - pos.entry_price
            candidate = pos.extreme_price - atr_value * self.trailing_offset_atr
            better = pos.trailing_stop is None or candidate > pos.trailing_stop
        else:
            pos.extreme_price = min(pos.extreme_price or pos.entry_price, bar.low)
            excursion = pos.entry_price - pos.extreme_price
            candidate = pos.extreme_price + atr_value * self.trailing_offset_atr
            better = pos.trailing_stop is None or candidate < pos.trailing_stop
        if excursion > atr_value * self.trailing_trigger_atr and better:
            pos.trailing_stop = candidate
            logger.info("Trailing stop %s -> %.6f", pos.side.name, candidate)
            self._reprotect(pos)

    def _check_daily_breaker(self) -> bool:
        """True if entries are halted for the current day."""
        if self.entries_halted:
            return True
        if self.risk_manager.daily_loss_breached(self.account.day_start_balance, self.account.balance):
            self._halted_day = self.account.current_day
            self._notify(
                f"Daily loss limit hit: balance {self.account.balance:.2f} vs day start "
                f"{self.account.day_start_balance:.2f}. No new entries until tomorrow."
            )
            return True
        return False

    def _try_entry(self, bar: Bar, df: pd.DataFrame) -> None:
        signal = self.evaluator.evaluate(df, self.account.balance)
        if signal is None:
            if self.evaluator.last_rejection:
                self._notify(f"Entry skipped ({self.symbol}): {self.evaluator.last_rejection}")
            return
        self.open(signal, bar)

    def open(self, signal: Signal, bar: Bar) -> Optional[Position]:
        """Open a position from a sized signal. Returns None if the entry order fails."""
        fill_note = ""
        if self.execution is not None:
            try:
                res = self.execution.place_market_and_sl_tp(self.symbol, signal)
            except GatewayError as e:
                logger.error("Entry order failed: %s", e)
                self._notify(f"Entry order failed ({signal.side.name} {self.symbol}): {e}")
                return None
            if res.avg_price:
                fill_note = f"\nFill: {res.avg_price:.4f}"
            if res.message:
                self._notify(f"{self.symbol}: {res.message}")

        entry = signal.entry_price
        qty = signal.quantity
        fee = entry * qty * self.fee_rate
        self.account.balance -= fee
        notional = entry * qty
        self.position = Position(
            symbol=self.symbol,
            side=signal.side,
            quantity=qty,
            entry_price=entry,
            opened_at=bar.time,
            stop_price=signal.stop_price,
            take_profit_price=signal.take_profit_price,
            take_profit_2=signal.take_profit_2,
            notional=notional,
            maintenance_margin=self._margin(notional),
            leverage=self.leverage,
            extreme_price=entry,
            initial_quantity=qty,
            fees_paid=fee,
        )
        logger.info("OPEN %s %s qty=%s entry=%.6f stop=%s", signal.side.name, self.symbol, qty, entry, signal.stop_price)
        lines = [
            f"OPEN {signal.side.name} {self.symbol} ({self.strategy.name})",
            f"Time: {self.format_time(bar.time)}",
            f"Entry: {entry:.4f} | Qty: {qty:g}",
        ]
        if signal.stop_price is not None:
            lines.append(f"SL: {signal.stop_price:.4f}")
        if signal.take_profit_price is not None:
            lines.append(f"TP1: {signal.take_profit_price:.4f}")
        if signal.take_profit_2 is not None:
            lines.append(f"TP2: {signal.take_profit_2:.4f}")
        lines.append(f"Balance: {self.account.balance:.2f}")
        self._notify("\n".join(lines) + fill_note)
        return self.position

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(
        self,
        exchange_position: Optional[ExchangePosition],
        atr: Optional[float] = None,
        now_ms: Optional[int] = None,
    ) -> Optional[str]:
        """
        Align local state with the exchange position.
        Returns "adopted", "external_close" or None (nothing to do).
        Raises InvariantViolation when both sides hold different positions.
        """
        with self._lock:
            now_ms = now_ms if now_ms is not None else self._now_ms()
            local = self.position
            if exchange_position is not None and local is None:
                self._adopt(exchange_position, atr, now_ms)
                return "adopted"
            if exchange_position is None and local is not None:
                self._external_close(local, now_ms)
                return "external_close"
            if exchange_position is not None and local is not None:
                tolerance = self.risk_manager.constraints.quantity_step + 1e-12
                if exchange_position.side != local.side or abs(exchange_position.quantity - local.quantity) > tolerance:
                    raise InvariantViolation(
                        f"{self.symbol}: exchange holds {exchange_position.side.name} {exchange_position.quantity} "
                        f"but local state holds {local.side.name} {local.quantity}"
                    )
                if local.external and local.stop_price is None and atr is not None and atr > 0:
                    self._approximate_stop(local, atr)
            return None

    def _approximate_stop(self, pos: Position, atr: float) -> None:
        pos.stop_price = pos.entry_price - pos.side.direction * atr * self.sl_atr_mult
        logger.info("Adopted %s position stop set from ATR: %.6f", pos.side.name, pos.stop_price)
        self._reprotect(pos)
        self._notify(f"{self.symbol}: approximate SL {pos.stop_price:.4f} set for adopted {pos.side.name} position.")

    def _adopt(self, ex: ExchangePosition, atr: Optional[float], now_ms: int) -> None:
        stop = None
        if atr is not None and atr > 0:
            stop = ex.entry_price - ex.side.direction * atr * self.sl_atr_mult
        notional = ex.entry_price * ex.quantity
        self.position = Position(
            symbol=self.symbol,
            side=ex.side,
            quantity=ex.quantity,
            entry_price=ex.entry_price,
            opened_at=now_ms - EXTERNAL_OPEN_AGE_MS,
            stop_price=stop,
            notional=notional,
            maintenance_margin=self._margin(notional),
            leverage=ex.leverage,
            extreme_price=ex.entry_price,
            external=True,
            initial_quantity=ex.quantity,
        )
        logger.warning("External position adopted: %s %s @ %s", ex.side.name, ex.quantity, ex.entry_price)
        if stop is not None:
            self._reprotect(self.position)
        stop_txt = f"{stop:.4f}" if stop is not None else "n/a"
        self._notify(
            f"External position detected on {self.symbol}: {ex.side.name} qty={ex.quantity:g} "
            f"entry={ex.entry_price:.4f}. Managing with approximate SL {stop_txt}."
        )

    def _external_close(self, pos: Position, now_ms: int) -> None:
        realized = 0.0
        exit_price = None
        if self.execution is not None:
            fills = [
                f for f in self.execution.fetch_recent_fills(self.symbol, self.fills_limit)
                if f.time >= pos.opened_at
            ]
            realized = sum(f.realized_pnl for f in fills)
            priced = [f for f in fills if f.price > 0]
            if priced:
                exit_price = max(priced, key=lambda f: f.time).price
        self.account.balance += realized
        self.trades.append(Trade(
            symbol=self.symbol,
            side=pos.side,
            quantity=pos.initial_quantity or pos.quantity,
            entry_price=pos.entry_price,
            exit_price=exit_price,
            pnl=pos.realized_pnl - pos.fees_paid + realized,
            entry_time=pos.opened_at,
            exit_time=now_ms,
            exit_reason="external",
            fees=pos.fees_paid,
        ))
        self.position = None
        self.account.refresh_peak()
        logger.warning("Position closed externally: realised %.4f", realized)
        self._notify(
            f"CLOSE {pos.side.name} {self.symbol} (External)\n"
            f"Realised PnL: {realized:+.2f}\n"
            f"Balance: {self.account.balance:.2f}\n"
            f"Ready for new entries."
        )
