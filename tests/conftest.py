"""Shared fixtures: synthetic bars and a scripted strategy."""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pytest

from tradesim.core.config import SimulationConfig, StrategyParams
from tradesim.core.types import Bar, Direction, SignalKind
from tradesim.indicators.volatility import ATR
from tradesim.strategies.base import BaseStrategy, StrategyContext

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
STEP = timedelta(minutes=15)


def ts(i: int) -> datetime:
    return T0 + STEP * i


def make_bar(i: int, close: float, symbol: str = "TEST", spread: float = 0.5,
             open_: Optional[float] = None, high: Optional[float] = None, low: Optional[float] = None) -> Bar:
    o = close if open_ is None else open_
    h = max(o, close) + spread if high is None else high
    lo = min(o, close) - spread if low is None else low
    return Bar(symbol=symbol, timestamp=ts(i), open=o, high=h, low=lo, close=close, volume=1.0)


def make_bars(closes: Sequence[float], symbol: str = "TEST", spread: float = 0.5) -> List[Bar]:
    return [make_bar(i, c, symbol, spread) for i, c in enumerate(closes)]


def random_walk(n: int, seed: int = 7, start: float = 100.0, symbol: str = "TEST") -> List[Bar]:
    rng = np.random.RandomState(seed)
    closes = start * np.exp(np.cumsum(rng.normal(0, 0.01, n)))
    bars = []
    prev = start
    for i, c in enumerate(closes):
        c = float(c)
        wick = abs(float(rng.normal(0, 0.004))) * c
        bars.append(Bar(
            symbol=symbol,
            timestamp=ts(i),
            open=prev,
            high=max(prev, c) + wick,
            low=min(prev, c) - wick,
            close=c,
            volume=1.0,
        ))
        prev = c
    return bars


Script = Dict[int, List[Tuple[SignalKind, Direction]]]


class ScriptedStrategy(BaseStrategy):
    """Emits fixed signals at given bar indices (1-based, as in snapshots)."""

    name = "scripted"

    def __init__(self, script: Optional[Script] = None, on_evaluate: Optional[Callable] = None,
                 params: Optional[StrategyParams] = None):
        super().__init__(params or StrategyParams())
        self.script = script or {}
        self.on_evaluate = on_evaluate
        self.evaluated: List[int] = []

    def build_indicators(self):
        return [ATR(1, name="atr")]

    @property
    def required_indicators(self):
        return ("atr",)

    def evaluate(self, ctx: StrategyContext):
        self.evaluated.append(ctx.snapshot.bar_index)
        if self.on_evaluate is not None:
            self.on_evaluate(ctx)
        return [
            self._signal(ctx, kind, direction, "scripted")
            for kind, direction in self.script.get(ctx.snapshot.bar_index, [])
        ]


def sim_config(**overrides) -> SimulationConfig:
    """Small deterministic config: one unit per lot, no costs, no sizing scale-down."""
    data = {
        "symbol": "TEST",
        "initial_balance": 10000.0,
        "position": {"max_lots": 3, "position_size": 1.0},
        "risk": {"position_sizing_mode": "AGGRESSIVE"},
    }
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value
    return SimulationConfig.from_dict(data)


@pytest.fixture
def config_factory():
    return sim_config
