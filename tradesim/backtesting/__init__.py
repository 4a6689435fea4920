"""Backtesting: single-symbol bar pipeline and the multi-symbol orchestrator."""

from tradesim.backtesting.engine import BacktestEngine, BacktestResult, order_signals
from tradesim.backtesting.orchestrator import MultiSymbolOrchestrator, MultiSymbolResult, SymbolResult

__all__ = [
    "BacktestEngine",
    "BacktestResult",
    "order_signals",
    "MultiSymbolOrchestrator",
    "MultiSymbolResult",
    "SymbolResult",
]
