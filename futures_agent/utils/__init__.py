"""Utils: Telegram, timeframes, exchange filters."""

from futures_agent.utils.telegram import send_telegram, TelegramNotifier
from futures_agent.utils.timeframes import timeframe_minutes, working_timeframe

__all__ = ["send_telegram", "TelegramNotifier", "timeframe_minutes", "working_timeframe"]
