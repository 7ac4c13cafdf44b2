"""Unit tests for lifecycle.manager (PositionManager)."""

from dataclasses import replace

import pytest

from conftest import MINUTE_MS, START_MS, FakeExchange, ScriptedStrategy, bar_frame, long_signal
from futures_agent.core.errors import InvariantViolation
from futures_agent.core.types import ExchangePosition, Fill, PositionState, SignalSide
from futures_agent.lifecycle.manager import PositionManager
from futures_agent.risk.manager import RiskManager
from futures_agent.strategies.evaluator import SignalEvaluator

DAY_MS = 86_400_000


def t(i):
    return START_MS + (i + 1) * 15 * MINUTE_MS - 1


def make_manager(collector, strategy=None, execution=None, **kwargs):
    strategy = strategy or ScriptedStrategy()
    rm = RiskManager(risk_per_trade=0.01, leverage=1, fee_rate=0.001, max_risk_fraction=0.5, daily_loss_limit=0.03)
    ev = SignalEvaluator(strategy, rm, min_history_bars=1)
    params = dict(initial_balance=1000.0, fee_rate=0.001, cooldown_bars=0)
    params.update(kwargs)
    return PositionManager("SOLUSDT", ev, notifier=collector, execution=execution, **params)


def open_long(pm, stop=98.0, tp1=None, tp2=None, time_ms=None):
    pm.strategy.next_signal = long_signal(stop=stop, tp1=tp1, tp2=tp2)
    assert pm.process_bar(bar_frame(time_ms or t(0), 100.0, 100.5, 99.5, 100.0))
    assert pm.position is not None


def test_entry_opens_position_and_charges_fee(collector):
    pm = make_manager(collector)
    open_long(pm, tp2=104.0)
    pos = pm.position
    assert pm.state == PositionState.OPEN
    assert pos.quantity == pytest.approx(5.0)  # 1000 * 1% / 2
    assert pos.notional == pytest.approx(500.0)
    assert pos.maintenance_margin == pytest.approx(500.0 * 0.005)
    assert pm.account.balance == pytest.approx(1000.0 - 0.5)
    assert len(collector.matching("OPEN LONG")) == 1


def test_stop_wins_when_bar_spans_stop_and_target(collector):
    pm = make_manager(collector, cooldown_bars=5)
    open_long(pm, tp2=104.0)
    pm.process_bar(bar_frame(t(1), 100.0, 105.0, 97.0, 103.0))
    assert pm.position is None
    trade = pm.trades[-1]
    assert trade.exit_reason == "stop_loss"
    assert trade.exit_price == 98.0
    assert pm.account.balance == pytest.approx(999.5 - 10.0 - 0.49)
    assert trade.pnl == pytest.approx(-10.0 - 0.5 - 0.49)
    assert pm.state == PositionState.COOLDOWN


def test_take_profit_at_target(collector):
    pm = make_manager(collector)
    open_long(pm, tp2=104.0)
    pm.process_bar(bar_frame(t(1), 100.0, 104.5, 99.0, 104.2))
    assert pm.trades[-1].exit_reason == "take_profit"
    assert pm.trades[-1].exit_price == 104.0


def test_partial_take_profit_then_break_even(collector):
    strategy = ScriptedStrategy(partial_take_profit=True)
    pm = make_manager(collector, strategy=strategy)
    open_long(pm, tp1=102.0, tp2=104.0)

    pm.process_bar(bar_frame(t(1), 100.0, 102.5, 100.5, 102.0))
    pos = pm.position
    assert pm.state == PositionState.PARTIAL
    assert pos.partial_exit_taken
    assert pos.quantity == pytest.approx(2.5)
    assert pos.stop_price == 100.0
    assert pm.account.balance == pytest.approx(999.5 + 5.0 - 0.255)
    assert len(collector.matching("TP1 HIT")) == 1

    # TP1 is not taken twice
    pm.process_bar(bar_frame(t(2), 102.0, 102.8, 100.2, 102.5))
    assert pm.position.quantity == pytest.approx(2.5)

    pm.process_bar(bar_frame(t(3), 101.0, 101.0, 99.9, 100.1))
    assert pm.position is None
    trade = pm.trades[-1]
    assert trade.exit_reason == "stop_loss"
    assert trade.exit_price == 100.0
    assert trade.quantity == pytest.approx(5.0)
    assert trade.pnl == pytest.approx(5.0 - 0.5 - 0.255 - 0.25)
    # balance moves only by fees and realised PnL
    assert pm.account.balance == pytest.approx(1000.0 + sum(tr.pnl for tr in pm.trades))


def test_same_bar_processed_once(collector):
    pm = make_manager(collector)
    pm.strategy.next_signal = long_signal()
    frame = bar_frame(t(0), 100.0, 100.5, 99.5, 100.0)
    assert pm.process_bar(frame) is True
    balance = pm.account.balance
    assert pm.process_bar(frame) is False
    assert pm.process_bar(bar_frame(t(0) - 1, 100.0, 100.5, 99.5, 100.0)) is False
    assert pm.account.balance == balance
    assert pm.position.bars_held == 0


def test_cooldown_blocks_entries(collector):
    pm = make_manager(collector, cooldown_bars=2)
    open_long(pm)
    pm.process_bar(bar_frame(t(1), 100.0, 100.0, 97.0, 97.5))
    assert pm.position is None
    assert pm.account.cooldown_bars_remaining == 1

    pm.strategy.next_signal = long_signal()
    pm.process_bar(bar_frame(t(2), 97.5, 100.5, 97.0, 100.0))
    assert pm.position is None
    assert pm.account.cooldown_bars_remaining == 0
    assert pm.state == PositionState.FLAT

    pm.process_bar(bar_frame(t(3), 100.0, 100.5, 99.5, 100.0))
    assert pm.position is not None


def test_daily_loss_breaker_halts_entries_until_next_day(collector):
    pm = make_manager(collector)
    pm.process_bar(bar_frame(t(0), 100.0, 100.5, 99.5, 100.0))
    assert pm.account.day_start_balance == 1000.0
    pm.account.balance = 960.0

    pm.strategy.next_signal = long_signal()
    pm.process_bar(bar_frame(t(1), 100.0, 100.5, 99.5, 100.0))
    pm.process_bar(bar_frame(t(2), 100.0, 100.5, 99.5, 100.0))
    assert pm.position is None
    assert pm.entries_halted
    assert len(collector.matching("Daily loss limit")) == 1

    pm.process_bar(bar_frame(t(0) + DAY_MS, 100.0, 100.5, 99.5, 100.0))
    assert pm.account.day_start_balance == 960.0
    assert not pm.entries_halted
    assert pm.position is not None
    assert pm.position.quantity == pytest.approx(4.8)


def test_trailing_stop_only_ratchets_forward(collector):
    strategy = ScriptedStrategy(uses_trailing_stop=True)
    pm = make_manager(collector, strategy=strategy, trailing_trigger_atr=1.0, trailing_offset_atr=1.5)
    open_long(pm)
    trail = []
    peaks = [pm.account.peak_balance]
    bars = [
        (100.0, 102.0, 100.0, 101.5),
        (101.5, 101.5, 101.0, 101.2),
        (101.2, 104.0, 102.6, 103.5),
    ]
    for i, (o, h, l, c) in enumerate(bars, start=1):
        pm.process_bar(bar_frame(t(i), o, h, l, c, atr=1.0))
        trail.append(pm.position.trailing_stop)
        peaks.append(pm.account.peak_balance)
    assert trail == [pytest.approx(100.5), pytest.approx(100.5), pytest.approx(102.5)]

    pm.process_bar(bar_frame(t(4), 103.5, 103.0, 102.0, 102.2, atr=1.0))
    peaks.append(pm.account.peak_balance)
    assert pm.position is None
    assert pm.trades[-1].exit_reason == "trailing_stop"
    assert pm.trades[-1].exit_price == pytest.approx(102.5)
    assert peaks == sorted(peaks)
    assert pm.account.peak_balance == pytest.approx(pm.account.balance)


def test_time_exit_after_max_hold_bars(collector):
    pm = make_manager(collector, max_hold_bars=2)
    open_long(pm)
    pm.process_bar(bar_frame(t(1), 100.0, 100.5, 99.5, 100.2))
    assert pm.position is not None
    pm.process_bar(bar_frame(t(2), 100.2, 100.6, 99.8, 100.4))
    assert pm.position is None
    assert pm.trades[-1].exit_reason == "time_exit"
    assert pm.trades[-1].exit_price == 100.4


def test_policy_reversal_exits_at_close(collector):
    pm = make_manager(collector)
    open_long(pm, stop=90.0)
    pm.strategy.exit_on_next = "reversal"
    pm.process_bar(bar_frame(t(1), 100.0, 100.5, 99.0, 99.2))
    assert pm.trades[-1].exit_reason == "reversal"
    assert pm.trades[-1].exit_price == 99.2


def short_signal(entry=99.2, stop=101.2):
    return replace(long_signal(entry=entry, stop=stop), side=SignalSide.SHORT)


def test_reversal_closes_and_opens_opposite_side_on_same_bar(collector):
    pm = make_manager(collector)
    open_long(pm, stop=90.0)
    pm.strategy.exit_on_next = "reversal"
    pm.strategy.next_signal = short_signal()
    assert pm.process_bar(bar_frame(t(1), 100.0, 100.5, 99.0, 99.2))
    assert [tr.exit_reason for tr in pm.trades] == ["reversal"]
    assert pm.position.side == SignalSide.SHORT
    assert pm.position.entry_price == 99.2
    assert pm.position.opened_at == t(1)
    assert len(collector.matching("CLOSE LONG")) == 1
    assert len(collector.matching("OPEN SHORT")) == 1


def test_reversal_with_cooldown_only_exits(collector):
    pm = make_manager(collector, cooldown_bars=2)
    open_long(pm, stop=90.0)
    pm.strategy.exit_on_next = "reversal"
    pm.strategy.next_signal = short_signal()
    pm.process_bar(bar_frame(t(1), 100.0, 100.5, 99.0, 99.2))
    assert pm.position is None
    assert not collector.matching("OPEN SHORT")


def test_trailing_stop_arms_only_when_excursion_exceeds_trigger(collector):
    strategy = ScriptedStrategy(uses_trailing_stop=True)
    pm = make_manager(collector, strategy=strategy, trailing_trigger_atr=1.0, trailing_offset_atr=0.5)
    open_long(pm)
    # excursion equals ATR * trigger
    pm.process_bar(bar_frame(t(1), 100.0, 101.0, 99.8, 100.8, atr=1.0))
    assert pm.position.trailing_stop is None
    pm.process_bar(bar_frame(t(2), 100.8, 101.5, 100.6, 101.2, atr=1.0))
    assert pm.position.trailing_stop == pytest.approx(101.0)


def test_failed_partial_close_keeps_full_quantity(collector):
    exchange = FakeExchange()
    pm = make_manager(collector, strategy=ScriptedStrategy(partial_take_profit=True), execution=exchange)
    open_long(pm, tp1=102.0, tp2=104.0)
    exchange.position = ExchangePosition("SOLUSDT", SignalSide.LONG, 5.0, 100.0)
    exchange.fail_on = {"place_market_order"}
    balance = pm.account.balance

    pm.process_bar(bar_frame(t(1), 100.0, 102.5, 100.5, 102.0))
    assert pm.position.quantity == pytest.approx(5.0)
    assert not pm.position.partial_exit_taken
    assert pm.position.stop_price == 98.0
    assert pm.account.balance == balance
    assert collector.matching("Partial close failed")
    assert pm.reconcile(exchange.position) is None

    exchange.fail_on = set()
    pm.process_bar(bar_frame(t(2), 102.0, 102.5, 101.0, 102.2))
    assert pm.position.partial_exit_taken
    assert pm.position.quantity == pytest.approx(2.5)


def test_reconcile_adopts_external_position_once(collector):
    pm = make_manager(collector)
    ex = ExchangePosition("SOLUSDT", SignalSide.LONG, 2.0, 150.0, leverage=5)
    now = START_MS + DAY_MS
    assert pm.reconcile(ex, atr=2.0, now_ms=now) == "adopted"
    pos = pm.position
    assert pos.external
    assert pos.stop_price == pytest.approx(150.0 - 2.0 * 1.6)
    assert pos.opened_at == now - 3_600_000
    assert pm.reconcile(ex, atr=2.0, now_ms=now + 30_000) is None
    assert len(collector.matching("External position detected")) == 1
    assert pm.account.balance == 1000.0


def test_reconcile_conflict_raises(collector):
    pm = make_manager(collector)
    open_long(pm)
    with pytest.raises(InvariantViolation):
        pm.reconcile(ExchangePosition("SOLUSDT", SignalSide.SHORT, 5.0, 100.0))
    with pytest.raises(InvariantViolation):
        pm.reconcile(ExchangePosition("SOLUSDT", SignalSide.LONG, 7.0, 100.0))
    assert pm.reconcile(ExchangePosition("SOLUSDT", SignalSide.LONG, 5.0, 100.0)) is None


def test_reconcile_external_close_books_fills(collector):
    exchange = FakeExchange()
    pm = make_manager(collector, execution=exchange)
    open_long(pm)
    opened = pm.position.opened_at
    exchange.fills = [
        Fill(time=opened - 1, realized_pnl=50.0),
        Fill(time=opened + 1000, realized_pnl=-7.5, price=98.5),
        Fill(time=opened + 2000, realized_pnl=3.0, price=99.1),
    ]
    balance = pm.account.balance
    assert pm.reconcile(None, now_ms=opened + 5000) == "external_close"
    assert pm.position is None
    assert pm.account.balance == pytest.approx(balance - 4.5)
    assert pm.trades[-1].exit_reason == "external"
    assert pm.trades[-1].exit_price == 99.1
    assert len(collector.matching("(External)")) == 1
    assert pm.reconcile(None) is None


def test_external_close_without_fills_has_no_exit_price(collector):
    pm = make_manager(collector, execution=FakeExchange())
    open_long(pm)
    assert pm.reconcile(None) == "external_close"
    assert pm.trades[-1].exit_price is None


def test_entry_order_failure_leaves_no_position(collector):
    exchange = FakeExchange()
    exchange.fail_on = {"place_market_order"}
    pm = make_manager(collector, execution=exchange)
    pm.strategy.next_signal = long_signal()
    pm.process_bar(bar_frame(t(0), 100.0, 100.5, 99.5, 100.0))
    assert pm.position is None
    assert pm.account.balance == 1000.0
    assert len(collector.matching("Entry order failed")) == 1


def test_protective_order_failure_is_reported(collector):
    exchange = FakeExchange()
    exchange.fail_on = {"place_stop_order"}
    pm = make_manager(collector, execution=exchange)
    open_long(pm, tp2=104.0)
    assert collector.matching("stop order failed")
    assert ("place_take_profit_order", SignalSide.SHORT, 5.0, 104.0) in exchange.calls


def test_live_partial_closes_half_and_moves_stop(collector):
    exchange = FakeExchange()
    pm = make_manager(collector, strategy=ScriptedStrategy(partial_take_profit=True), execution=exchange)
    open_long(pm, tp1=102.0, tp2=104.0)
    exchange.calls.clear()
    pm.process_bar(bar_frame(t(1), 100.0, 102.5, 100.5, 102.0))
    assert exchange.calls[0] == ("place_market_order", SignalSide.SHORT, 2.5, True)
    assert ("cancel_open_orders",) in exchange.calls
    assert ("place_stop_order", SignalSide.SHORT, 2.5, 100.0) in exchange.calls
    assert ("place_take_profit_order", SignalSide.SHORT, 2.5, 104.0) in exchange.calls


def test_status_snapshot(collector):
    pm = make_manager(collector)
    assert pm.status()["position"] is None
    open_long(pm, tp2=104.0)
    status = pm.status()
    assert status["state"] == "OPEN"
    assert status["balance"] == pytest.approx(999.5)
    assert status["peak_balance"] == pytest.approx(1000.0)
    assert status["position"]["side"] == "LONG"
    assert status["position"]["take_profit_2"] == 104.0
    assert status["last_processed_bar_time"] == t(0)
