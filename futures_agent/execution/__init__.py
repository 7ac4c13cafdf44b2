"""Execution: exchange gateway abstraction, Binance Futures and paper implementations."""

from futures_agent.execution.base import ExecutionClient, OrderResult
from futures_agent.execution.binance_futures import BinanceFuturesClient
from futures_agent.execution.paper import PaperExecutionClient

__all__ = ["ExecutionClient", "OrderResult", "BinanceFuturesClient", "PaperExecutionClient"]
