"""
Risk manager: position sizing, entry rejection rules and the daily loss breaker.

Two sizing conventions:
  risk:   qty = (balance * risk_per_trade / stop_distance) * leverage
  margin: qty = balance * margin_fraction * leverage / entry
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from futures_agent.core.errors import ConfigError
from futures_agent.core.types import InstrumentConstraints, Signal
from futures_agent.utils.exchange_filters import round_quantity

logger = logging.getLogger("futures_agent.risk")

SIZING_RISK = "risk"
SIZING_MARGIN = "margin"


@dataclass
class RiskResult:
    """Result of risk check: allowed or rejected + reason."""
    allowed: bool
    quantity: float = 0.0
    reason: str = ""
    fee: float = 0.0
    risk_usd: float = 0.0


class RiskManager:
    """
    Sizes entries from the account balance and rejects them when the entry fee
    would exceed the balance, the loss at stop exceeds max_risk_fraction of the
    balance, or the rounded quantity/notional is under the instrument minimum.
    """

    def __init__(
        self,
        risk_per_trade: float,
        leverage: int,
        fee_rate: float,
        max_risk_fraction: float,
        margin_fraction: float = 0.1,
        daily_loss_limit: float = 0.03,
        sizing: str = SIZING_RISK,
        constraints: Optional[InstrumentConstraints] = None,
    ):
        if sizing not in (SIZING_RISK, SIZING_MARGIN):
            raise ConfigError(f"Unknown sizing {sizing!r}")
        self.risk_per_trade = risk_per_trade
        self.leverage = leverage
        self.fee_rate = fee_rate
        self.max_risk_fraction = max_risk_fraction
        self.margin_fraction = margin_fraction
        self.daily_loss_limit = daily_loss_limit
        self.sizing = sizing
        self.constraints = constraints or InstrumentConstraints()

    def update_constraints(self, constraints: Optional[InstrumentConstraints]) -> None:
        """Update lot/notional filters when exchange info is (re)loaded."""
        self.constraints = constraints or InstrumentConstraints()

    @staticmethod
    def stop_distance(signal: Signal) -> Optional[float]:
        """Distance to the stop; falls back to metadata for policies without a placed stop."""
        if signal.stop_price is not None:
            return abs(signal.entry_price - signal.stop_price)
        dist = signal.metadata.get("stop_distance")
        return float(dist) if dist is not None else None

    def raw_quantity(self, entry_price: float, stop_distance: Optional[float], balance: float) -> float:
        if self.sizing == SIZING_MARGIN:
            if entry_price <= 0:
                return 0.0
            return balance * self.margin_fraction * self.leverage / entry_price
        if not stop_distance or stop_distance <= 0:
            return 0.0
        return (balance * self.risk_per_trade / stop_distance) * self.leverage

    def validate_signal(self, signal: Signal, balance: float) -> RiskResult:
        """Compute the allowed quantity for a raw signal, or the reason it is rejected."""
        if balance <= 0:
            return RiskResult(allowed=False, reason="no balance")
        entry = signal.entry_price
        dist = self.stop_distance(signal)
        if self.sizing == SIZING_RISK and (dist is None or dist <= 0):
            return RiskResult(allowed=False, reason="zero stop distance")

        c = self.constraints
        qty = round_quantity(self.raw_quantity(entry, dist, balance), c.min_quantity, c.quantity_step, c.quantity_precision)
        if qty <= 0:
            return RiskResult(allowed=False, reason=f"qty below minimum {c.min_quantity}")

        notional = qty * entry
        if notional < c.min_notional:
            return RiskResult(allowed=False, reason=f"notional {notional:.2f} < min {c.min_notional}")

        fee = notional * self.fee_rate
        if fee >= balance:
            return RiskResult(allowed=False, reason=f"entry fee {fee:.4f} exceeds balance {balance:.2f}")

        risk_usd = dist * qty if dist else 0.0
        if risk_usd > balance * self.max_risk_fraction:
            return RiskResult(
                allowed=False,
                reason=f"risk {risk_usd:.2f} > {self.max_risk_fraction:.2%} of balance {balance:.2f}",
            )
        return RiskResult(allowed=True, quantity=qty, fee=fee, risk_usd=risk_usd)

    def daily_loss_breached(self, day_start_balance: float, balance: float) -> bool:
        """True if the drawdown from the day's starting balance exceeds daily_loss_limit."""
        if day_start_balance <= 0:
            return False
        loss_frac = (day_start_balance - balance) / day_start_balance
        if loss_frac > self.daily_loss_limit:
            logger.warning("Daily loss limit reached: %.2f%% > %.2f%%", loss_frac * 100, self.daily_loss_limit * 100)
            return True
        return False
