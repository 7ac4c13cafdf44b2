"""Notification texts: startup message and the periodic digest."""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Optional

from futures_agent.analytics.metrics import PerformanceMetrics


def format_ms(ms: int, utc_offset_hours: float = 0.0) -> str:
    tz = timezone(timedelta(hours=utc_offset_hours))
    return datetime.fromtimestamp(ms / 1000, tz=tz).strftime("%Y-%m-%d %H:%M")


def startup_text(
    symbol: str,
    policy: str,
    timeframe: str,
    mode: str,
    balance: float,
    leverage: int,
    testnet: bool,
) -> str:
    venue = "paper" if mode == "paper" else ("testnet" if testnet else "LIVE")
    return (
        f"Futures agent started | {symbol} | {policy} on {timeframe}\n"
        f"Mode: {venue} | Leverage: {leverage}x\n"
        f"Balance: {balance:.2f}"
    )


def digest_text(
    status: dict,
    price: Optional[float],
    metrics: PerformanceMetrics,
    now_ms: int,
    utc_offset_hours: float = 0.0,
) -> str:
    lines = [
        f"Report {format_ms(now_ms, utc_offset_hours)} | {status['symbol']}",
        f"Balance: {status['balance']:.2f} | Peak: {status['peak_balance']:.2f}",
        f"State: {status['state']} | Cooldown: {status['cooldown_bars_remaining']}",
    ]
    if price is not None:
        lines.append(f"Price: {price:.4f}")
    pos = status.get("position")
    if pos:
        direction = 1 if pos["side"] == "LONG" else -1
        upnl = (price - pos["entry_price"]) * pos["quantity"] * direction if price is not None else 0.0
        lines.append(
            f"Position: {pos['side']} {pos['quantity']:g} @ {pos['entry_price']:.4f} | uPnL: {upnl:+.2f}"
        )
    else:
        lines.append("Position: none")
    if metrics.total_trades:
        pf = "inf" if metrics.profit_factor == float("inf") else f"{metrics.profit_factor:.2f}"
        lines.append(
            f"Trades: {metrics.total_trades} | Win rate: {metrics.win_rate * 100:.1f}% | PF: {pf} "
            f"| PnL: {metrics.total_pnl:+.2f}"
        )
    if status.get("entries_halted"):
        lines.append("Entries halted: daily loss limit")
    return "\n".join(lines)
