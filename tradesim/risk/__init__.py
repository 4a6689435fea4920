"""Risk management: loss streak, drawdown stop, sizing modes, portfolio caps."""

from tradesim.risk.manager import RiskManager, RiskResult, RiskState

__all__ = ["RiskManager", "RiskResult", "RiskState"]
