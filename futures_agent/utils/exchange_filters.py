"""Lot size, notional and price filter helpers from exchange info."""

from __future__ import annotations
import math
from typing import Optional

from futures_agent.core.types import InstrumentConstraints


def parse_symbol_filters(symbol_info: Optional[dict]) -> InstrumentConstraints:
    """
    Extract step size, min qty, min notional, precision and tick size from
    Binance symbol info. Uses defaults if symbol_info is None.
    """
    constraints = InstrumentConstraints()
    if not symbol_info:
        return constraints
    if "quantityPrecision" in symbol_info:
        constraints.quantity_precision = int(symbol_info["quantityPrecision"])
    for f in symbol_info.get("filters", []):
        if f.get("filterType") == "LOT_SIZE":
            constraints.min_quantity = float(f.get("minQty", constraints.min_quantity))
            constraints.quantity_step = float(f.get("stepSize", constraints.quantity_step))
        if f.get("filterType") == "PRICE_FILTER":
            constraints.price_tick = float(f.get("tickSize", constraints.price_tick))
        if f.get("filterType") == "MIN_NOTIONAL":
            # futures use "notional", spot uses "minNotional"
            constraints.min_notional = float(f.get("notional", f.get("minNotional", constraints.min_notional)))
    return constraints


def round_quantity(qty: float, min_qty: float, step_size: float, precision: int = 8) -> float:
    """Round down to step size; return 0 if below min_qty."""
    if qty <= 0:
        return 0.0
    # small epsilon so 0.3/0.1 style float error does not lose a whole step
    rounded = math.floor(qty / step_size + 1e-9) * step_size
    rounded = round(rounded, min(precision, 8))
    if rounded < min_qty:
        return 0.0
    return rounded


def round_price(price: float, tick_size: float) -> float:
    """Round price to exchange tick."""
    return round(round(price / tick_size) * tick_size, 8)
