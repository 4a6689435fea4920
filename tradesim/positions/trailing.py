"""
Per-lot trailing stop: INACTIVE -> ARMED once profit reaches the activation
threshold, then the level trails the best excursion and only tightens.
"""

from __future__ import annotations
from typing import Optional

from tradesim.core.config import TrailingStopConfig, TrailingType
from tradesim.core.types import Bar, Direction, Lot


class TrailingStop:

    def __init__(self, config: TrailingStopConfig):
        self.config = config

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def distance(self, lot: Lot, atr: Optional[float]) -> Optional[float]:
        if self.config.type is TrailingType.PERCENTAGE:
            extreme = lot.highest_price if lot.direction is Direction.LONG else lot.lowest_price
            return extreme * self.config.percentage
        if atr is None or atr <= 0:
            return None
        return atr * self.config.atr_multiplier

    def triggered(self, lot: Lot, bar: Bar) -> Optional[float]:
        """Fill price if this bar crosses the armed level, else None. Gaps fill at the open."""
        if not lot.trailing_armed or lot.trailing_level is None:
            return None
        level = lot.trailing_level
        if lot.direction is Direction.LONG:
            if bar.low <= level:
                return min(bar.open, level)
        elif bar.high >= level:
            return max(bar.open, level)
        return None

    def update(self, lot: Lot, bar: Bar, atr: Optional[float]) -> None:
        """Track excursions, arm on activation profit, tighten the level."""
        lot.highest_price = max(lot.highest_price, bar.high)
        lot.lowest_price = min(lot.lowest_price, bar.low)
        if not self.enabled:
            return
        if not lot.trailing_armed:
            if lot.profit_pct(bar.close) < self.config.activation_profit:
                return
            lot.trailing_armed = True
        dist = self.distance(lot, atr)
        if dist is None:
            return
        if lot.direction is Direction.LONG:
            candidate = lot.highest_price - dist
            level = candidate if lot.trailing_level is None else max(lot.trailing_level, candidate)
        else:
            candidate = lot.lowest_price + dist
            level = candidate if lot.trailing_level is None else min(lot.trailing_level, candidate)
        lot.trailing_level = level
