"""Core: config, types, errors, logging."""

from tradesim.core.config import (
    load_config,
    Config,
    SimulationConfig,
    PortfolioConfig,
    StrategyParams,
    PositionConfig,
    TrailingStopConfig,
    RiskConfig,
    StrategyKind,
    ExitMode,
    TrailingType,
    SizingMode,
)
from tradesim.core.errors import (
    SimulationError,
    ConfigError,
    DataError,
    ExecutionError,
    InvariantViolation,
    IndicatorNotReadyError,
)
from tradesim.core.types import (
    Bar,
    Direction,
    Signal,
    SignalKind,
    SignalStatus,
    SignalOutcome,
    Lot,
    ClosedTrade,
    ExitReason,
    EquityPoint,
    OrderSide,
)
from tradesim.core.logger import setup_logging, symbol_context

__all__ = [
    "load_config",
    "Config",
    "SimulationConfig",
    "PortfolioConfig",
    "StrategyParams",
    "PositionConfig",
    "TrailingStopConfig",
    "RiskConfig",
    "StrategyKind",
    "ExitMode",
    "TrailingType",
    "SizingMode",
    "SimulationError",
    "ConfigError",
    "DataError",
    "ExecutionError",
    "InvariantViolation",
    "IndicatorNotReadyError",
    "Bar",
    "Direction",
    "Signal",
    "SignalKind",
    "SignalStatus",
    "SignalOutcome",
    "Lot",
    "ClosedTrade",
    "ExitReason",
    "EquityPoint",
    "OrderSide",
    "setup_logging",
    "symbol_context",
]
