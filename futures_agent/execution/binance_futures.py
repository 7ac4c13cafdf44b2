"""
Binance USDT-M Futures gateway with rate-limit backoff on reads.
"""

from __future__ import annotations
import functools
import logging
import time
from typing import Dict, List, Optional

import pandas as pd
import requests

from binance.client import Client
from binance.exceptions import BinanceAPIException, BinanceRequestException

from futures_agent.core.errors import GatewayError
from futures_agent.core.types import ExchangePosition, Fill, InstrumentConstraints, SignalSide
from futures_agent.execution.base import ExecutionClient, OrderResult
from futures_agent.utils.exchange_filters import parse_symbol_filters, round_price

logger = logging.getLogger("futures_agent.execution.binance")


def retry_on_rate_limit(max_retries: int = 3, base_delay: float = 1.0):
    """Decorator: back off on 429 or 418 (rate limit). Used for reads only."""
    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return f(*args, **kwargs)
                except BinanceAPIException as e:
                    if e.status_code in (429, 418) and attempt < max_retries - 1:
                        delay = base_delay * (2 ** attempt)
                        logger.warning("Rate limited, retry in %.1fs (attempt %d)", delay, attempt + 1)
                        time.sleep(delay)
                    else:
                        raise
        return wrapped
    return decorator


def gateway_errors(f):
    """Translate Binance and HTTP exceptions into GatewayError."""
    @functools.wraps(f)
    def wrapped(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (BinanceAPIException, BinanceRequestException, requests.RequestException) as e:
            raise GatewayError(f"{f.__name__}: {e}") from e
    return wrapped


class BinanceFuturesClient(ExecutionClient):
    """Binance USDT-M Futures client (testnet and live). Public endpoints work without keys."""

    def __init__(self, api_key: str = "", api_secret: str = "", testnet: bool = True):
        self._client = Client(api_key or None, api_secret or None, testnet=testnet)
        logger.info("Binance Futures: using %s", "TESTNET" if testnet else "LIVE")
        self._constraints: Dict[str, InstrumentConstraints] = {}

    @gateway_errors
    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def get_klines(self, symbol: str, interval: str, limit: int = 1000) -> pd.DataFrame:
        raw = self._client.futures_klines(symbol=symbol, interval=interval, limit=limit)
        df = pd.DataFrame(raw, columns=[
            "open_time", "open", "high", "low", "close", "volume",
            "close_time", "quote_av", "num_trades", "tb_base_av", "tb_quote_av", "ignore"
        ])
        df[["open", "high", "low", "close", "volume"]] = df[["open", "high", "low", "close", "volume"]].astype(float)
        df["time"] = df["close_time"].astype("int64")
        return df[["time", "open", "high", "low", "close", "volume"]]

    @gateway_errors
    @retry_on_rate_limit(max_retries=2)
    def get_price(self, symbol: str) -> float:
        return float(self._client.futures_symbol_ticker(symbol=symbol)["price"])

    @gateway_errors
    @retry_on_rate_limit(max_retries=2)
    def get_open_position(self, symbol: str) -> Optional[ExchangePosition]:
        for p in self._client.futures_position_information(symbol=symbol):
            amt = float(p.get("positionAmt", 0.0))
            if amt != 0:
                return ExchangePosition(
                    symbol=symbol,
                    side=SignalSide.LONG if amt > 0 else SignalSide.SHORT,
                    quantity=abs(amt),
                    entry_price=float(p.get("entryPrice", 0)),
                    unrealized_pnl=float(p.get("unRealizedProfit", 0)),
                    leverage=int(float(p.get("leverage", 1))),
                )
        return None

    @gateway_errors
    @retry_on_rate_limit(max_retries=2)
    def fetch_recent_fills(self, symbol: str, limit: int = 50) -> List[Fill]:
        trades = self._client.futures_account_trades(symbol=symbol, limit=limit)
        fills = [
            Fill(
                time=int(t.get("time", 0)),
                realized_pnl=float(t.get("realizedPnl", 0.0)),
                price=float(t.get("price", 0.0)),
                quantity=float(t.get("qty", 0.0)),
                side=SignalSide(t["side"]) if t.get("side") in ("BUY", "SELL") else None,
            )
            for t in trades
        ]
        return sorted(fills, key=lambda f: f.time)

    @gateway_errors
    @retry_on_rate_limit(max_retries=2)
    def get_instrument_constraints(self, symbol: str) -> InstrumentConstraints:
        info = self._client.futures_exchange_info()
        symbol_info = next((s for s in info.get("symbols", []) if s.get("symbol") == symbol), None)
        if symbol_info is None:
            logger.warning("Symbol info not found for %s; using defaults", symbol)
        constraints = parse_symbol_filters(symbol_info)
        self._constraints[symbol] = constraints
        logger.info(
            "Loaded %s filters: minQty=%s step=%s minNotional=%s tick=%s",
            symbol, constraints.min_quantity, constraints.quantity_step,
            constraints.min_notional, constraints.price_tick,
        )
        return constraints

    def _fmt_qty(self, symbol: str, qty: float) -> str:
        precision = self._constraints.get(symbol, InstrumentConstraints()).quantity_precision
        return f"{qty:.{precision}f}"

    def _fmt_price(self, symbol: str, price: float) -> str:
        tick = self._constraints.get(symbol, InstrumentConstraints()).price_tick
        return str(round_price(price, tick))

    @gateway_errors
    def set_leverage(self, symbol: str, leverage: int) -> None:
        self._client.futures_change_leverage(symbol=symbol, leverage=leverage)
        logger.info("Leverage set to %sx for %s", leverage, symbol)

    @gateway_errors
    def place_market_order(
        self, symbol: str, side: SignalSide, quantity: float, reduce_only: bool = False
    ) -> OrderResult:
        params = dict(symbol=symbol, side=side.value, type="MARKET", quantity=self._fmt_qty(symbol, quantity))
        if reduce_only:
            params["reduceOnly"] = "true"
        res = self._client.futures_create_order(**params)
        avg = float(res.get("avgPrice") or 0.0) or None
        logger.info("Market order %s %s qty=%s avg=%s", side.value, symbol, params["quantity"], avg)
        return OrderResult(success=True, order_id=str(res.get("orderId")), avg_price=avg, quantity=quantity)

    @gateway_errors
    def place_stop_order(self, symbol: str, side: SignalSide, quantity: float, stop_price: float) -> OrderResult:
        res = self._client.futures_create_order(
            symbol=symbol, side=side.value, type="STOP_MARKET",
            stopPrice=self._fmt_price(symbol, stop_price),
            quantity=self._fmt_qty(symbol, quantity), reduceOnly="true",
        )
        return OrderResult(success=True, order_id=str(res.get("orderId")), quantity=quantity)

    @gateway_errors
    def place_take_profit_order(self, symbol: str, side: SignalSide, quantity: float, price: float) -> OrderResult:
        res = self._client.futures_create_order(
            symbol=symbol, side=side.value, type="TAKE_PROFIT_MARKET",
            stopPrice=self._fmt_price(symbol, price),
            quantity=self._fmt_qty(symbol, quantity), reduceOnly="true",
        )
        return OrderResult(success=True, order_id=str(res.get("orderId")), quantity=quantity)

    @gateway_errors
    def cancel_open_orders(self, symbol: str) -> None:
        self._client.futures_cancel_all_open_orders(symbol=symbol)
