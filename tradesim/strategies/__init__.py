"""Strategies: base interface, crossover and volatility-regime families, registry."""

from tradesim.strategies.base import BaseStrategy, StrategyContext
from tradesim.strategies.crossover import CrossoverStrategy
from tradesim.strategies.volatility_regime import VolatilityRegimeStrategy
from tradesim.strategies.registry import build_strategy, register_strategy, get_strategy_cls

__all__ = [
    "BaseStrategy",
    "StrategyContext",
    "CrossoverStrategy",
    "VolatilityRegimeStrategy",
    "build_strategy",
    "register_strategy",
    "get_strategy_cls",
]
