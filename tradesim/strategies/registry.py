"""Strategy registry: StrategyKind -> strategy implementation, resolved once per run."""

from __future__ import annotations

from tradesim.core.config import StrategyKind, StrategyParams
from tradesim.core.errors import ConfigError
from tradesim.strategies.base import BaseStrategy
from tradesim.strategies.crossover import CrossoverStrategy
from tradesim.strategies.volatility_regime import VolatilityRegimeStrategy

_REGISTRY: dict[StrategyKind, type[BaseStrategy]] = {}


def register_strategy(kind: StrategyKind, cls: type[BaseStrategy]) -> None:
    _REGISTRY[kind] = cls


def get_strategy_cls(kind: StrategyKind) -> type[BaseStrategy]:
    if kind not in _REGISTRY:
        raise ConfigError(f"Unknown strategy kind: {kind}")
    return _REGISTRY[kind]


def build_strategy(params: StrategyParams) -> BaseStrategy:
    """Build the strategy named by params.kind."""
    return get_strategy_cls(params.kind)(params)


register_strategy(StrategyKind.CROSSOVER, CrossoverStrategy)
register_strategy(StrategyKind.VOLATILITY_REGIME, VolatilityRegimeStrategy)
