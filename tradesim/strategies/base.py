"""Abstract strategy: declares its indicators and turns a snapshot into signals."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from tradesim.core.config import StrategyParams
from tradesim.core.types import Bar, Direction, Lot, Signal, SignalKind
from tradesim.indicators.base import Indicator, IndicatorSnapshot


@dataclass(frozen=True)
class StrategyContext:
    """Everything a strategy may look at for one bar. Lots are copies."""
    symbol: str
    bar: Bar
    snapshot: IndicatorSnapshot
    previous: Optional[IndicatorSnapshot]
    lots: tuple[Lot, ...] = ()
    tracked_atr: Optional[float] = None

    @property
    def direction(self) -> Optional[Direction]:
        return self.lots[0].direction if self.lots else None

    @property
    def is_flat(self) -> bool:
        return not self.lots

    @property
    def n_lots(self) -> int:
        return len(self.lots)


class BaseStrategy(ABC):
    """
    Pure rule set. evaluate() must not keep state between calls: replaying the
    same bars gives the same signals. Anything that persists across bars
    (tracked ATR, lots) is passed in through the context.
    """

    name: str = "base"

    def __init__(self, params: StrategyParams):
        self.params = params

    @abstractmethod
    def build_indicators(self) -> list[Indicator]:
        """Fresh indicator instances this strategy reads (one set per symbol run)."""
        pass

    @property
    @abstractmethod
    def required_indicators(self) -> tuple[str, ...]:
        """Names that must be ready in both the current and previous snapshot."""
        pass

    @abstractmethod
    def evaluate(self, ctx: StrategyContext) -> list[Signal]:
        """Signals for the bar in ctx, in any order; the caller sorts exits first."""
        pass

    @property
    def required_bars(self) -> int:
        """Largest indicator warm-up plus one bar for the previous snapshot."""
        return max(ind.warmup for ind in self.build_indicators()) + 1

    def _signal(
        self,
        ctx: StrategyContext,
        kind: SignalKind,
        direction: Direction,
        reason: str,
        strength: float = 0.0,
        diagnostics: Optional[dict] = None,
    ) -> Signal:
        return Signal(
            kind=kind,
            direction=direction,
            price=ctx.bar.close,
            timestamp=ctx.bar.timestamp,
            strength=round(max(0.0, min(100.0, strength)), 4),
            reason=reason,
            symbol=ctx.symbol,
            diagnostics=dict(diagnostics or {}),
        )
