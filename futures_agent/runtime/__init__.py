"""Runtime: periodic drivers, the trading runner, reports and the status endpoint."""

from futures_agent.runtime.drivers import PeriodicDriver
from futures_agent.runtime.runner import TradingRunner
from futures_agent.runtime.status_server import StatusServer

__all__ = ["PeriodicDriver", "TradingRunner", "StatusServer"]
