"""Unit tests for utils.timeframes."""

import pytest
from futures_agent.utils.timeframes import timeframe_minutes, working_timeframe


def test_timeframe_minutes():
    assert timeframe_minutes("5m") == 5
    assert timeframe_minutes("1h") == 60
    assert timeframe_minutes("1d") == 1440


def test_timeframe_invalid():
    with pytest.raises(ValueError):
        timeframe_minutes("1x")


def test_working_timeframe():
    assert working_timeframe("5m", 3) == "15m"
    assert working_timeframe("15m", 4) == "1h"
    assert working_timeframe("1h", 24) == "1d"
    assert working_timeframe("5m", 1) == "5m"
