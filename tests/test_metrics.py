"""Unit tests for analytics.metrics."""

import pytest
from futures_agent.analytics.metrics import (
    max_drawdown,
    win_rate,
    profit_factor,
    expectancy,
    compute_metrics,
    trade_metrics,
)
from futures_agent.core.types import SignalSide, Trade


def test_win_rate():
    assert win_rate([1, -1, 1, 1]) == 0.75
    assert win_rate([]) == 0.0


def test_profit_factor():
    assert profit_factor([10, -5, 10, -5]) == 2.0
    assert profit_factor([10, 10]) == float("inf")
    assert profit_factor([-5, -5]) == 0.0


def test_expectancy():
    assert expectancy([10, -5, 5]) == pytest.approx(10 / 3)
    assert expectancy([]) == 0.0


def test_max_drawdown():
    # peak 120, trough 100  =>  -16.67%
    assert max_drawdown([100.0, 120.0, 100.0, 110.0]) == pytest.approx(-16.666, rel=0.01)
    assert max_drawdown([]) == 0.0


def test_compute_metrics():
    pnls = [10.0, -5.0, 15.0, -3.0]
    m = compute_metrics(pnls, initial_balance=100.0)
    assert m.total_trades == 4
    assert m.winning_trades == 2
    assert m.losing_trades == 2
    assert m.expectancy == pytest.approx(4.25)
    assert m.win_rate == 0.5
    assert m.total_pnl == pytest.approx(17.0)
    assert m.total_return_pct == pytest.approx(17.0)
    # equity 100, 110, 105, 120, 117
    assert m.max_drawdown_pct == pytest.approx(-5 / 110 * 100)


def test_compute_metrics_empty():
    m = compute_metrics([])
    assert m.total_trades == 0
    assert m.profit_factor == 0.0


def test_trade_metrics_uses_net_pnl():
    trades = [
        Trade("SOLUSDT", SignalSide.LONG, 1.0, 100.0, 102.0, 1.9, 0, 1, "take_profit", fees=0.1),
        Trade("SOLUSDT", SignalSide.SHORT, 1.0, 100.0, 101.0, -1.1, 2, 3, "stop_loss", fees=0.1),
    ]
    m = trade_metrics(trades)
    assert m.total_pnl == pytest.approx(0.8)
    assert m.profit_factor == pytest.approx(1.9 / 1.1)
