"""Position lifecycle: account state and the single-position state machine."""

from futures_agent.lifecycle.manager import AccountState, PositionManager

__all__ = ["AccountState", "PositionManager"]
