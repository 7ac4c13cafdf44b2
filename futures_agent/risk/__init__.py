"""Risk management: position sizing, entry rejection, daily loss breaker."""

from futures_agent.risk.manager import RiskManager, RiskResult, SIZING_MARGIN, SIZING_RISK

__all__ = ["RiskManager", "RiskResult", "SIZING_MARGIN", "SIZING_RISK"]
