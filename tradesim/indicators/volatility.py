"""
ATR and Supertrend.

ATR: first true range is high - low, seed is the mean of the first `period`
true ranges, then Wilder smoothing atr = (prev * (p - 1) + tr) / p.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from tradesim.core.types import Bar
from tradesim.indicators.base import Indicator


class ATR(Indicator):
    """Average true range (Wilder)."""

    def __init__(self, period: int = 14, name: Optional[str] = None):
        if period < 1:
            raise ValueError("ATR period must be > 0")
        self.period = period
        self.name = name or "atr"
        self._prev_close: Optional[float] = None
        self._count = 0
        self._seed_sum = 0.0
        self._value: Optional[float] = None

    @property
    def warmup(self) -> int:
        return self.period

    @property
    def value(self) -> Optional[float]:
        return self._value

    @staticmethod
    def true_range(bar: Bar, prev_close: Optional[float]) -> float:
        if prev_close is None:
            return bar.high - bar.low
        return max(bar.high - bar.low, abs(bar.high - prev_close), abs(bar.low - prev_close))

    def update(self, bar: Bar) -> Optional[float]:
        tr = self.true_range(bar, self._prev_close)
        self._prev_close = bar.close
        self._count += 1
        if self._value is None:
            self._seed_sum += tr
            if self._count == self.period:
                self._value = self._seed_sum / self.period
        else:
            p = self.period
            self._value = (self._value * (p - 1) + tr) / p
        return self._value


@dataclass(frozen=True)
class SupertrendValue:
    value: float
    direction: int  # +1 uptrend (line below price), -1 downtrend
    flipped: bool   # direction changed on this bar
    upper: float
    lower: float


class Supertrend(Indicator):
    """
    Supertrend over its own ATR. Final bands only tighten while price stays on
    the trend side; direction flips when the close crosses the opposite band.
    """

    def __init__(self, period: int = 10, multiplier: float = 3.0, name: str = "supertrend"):
        if multiplier <= 0:
            raise ValueError("Supertrend multiplier must be > 0")
        self.name = name
        self.multiplier = multiplier
        self.atr = ATR(period)
        self._prev_close: Optional[float] = None
        self._upper: Optional[float] = None
        self._lower: Optional[float] = None
        self._direction = 0
        self._value: Optional[SupertrendValue] = None

    @property
    def warmup(self) -> int:
        return self.atr.warmup

    @property
    def value(self) -> Optional[SupertrendValue]:
        return self._value

    def update(self, bar: Bar) -> Optional[SupertrendValue]:
        atr = self.atr.update(bar)
        prev_close = self._prev_close
        self._prev_close = bar.close
        if atr is None:
            return None

        basic_upper = bar.hl2 + self.multiplier * atr
        basic_lower = bar.hl2 - self.multiplier * atr
        if self._upper is None or self._lower is None:
            upper, lower = basic_upper, basic_lower
            direction = 1 if bar.close >= bar.hl2 else -1
            flipped = False
        else:
            upper = basic_upper if (basic_upper < self._upper or prev_close > self._upper) else self._upper
            lower = basic_lower if (basic_lower > self._lower or prev_close < self._lower) else self._lower
            direction = self._direction
            if direction < 0 and bar.close > upper:
                direction = 1
            elif direction > 0 and bar.close < lower:
                direction = -1
            flipped = direction != self._direction

        self._upper, self._lower, self._direction = upper, lower, direction
        self._value = SupertrendValue(
            value=lower if direction > 0 else upper,
            direction=direction,
            flipped=flipped,
            upper=upper,
            lower=lower,
        )
        return self._value
