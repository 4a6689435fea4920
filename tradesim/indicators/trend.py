"""
EMA and MACD.

EMA is seeded with the simple average of the first `period` values and then
follows ema = prev + k * (x - prev), k = 2 / (period + 1).
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from tradesim.core.types import Bar
from tradesim.indicators.base import Indicator


class EMA(Indicator):
    """Exponential moving average of closes."""

    def __init__(self, period: int, name: Optional[str] = None):
        if period < 1:
            raise ValueError("EMA period must be > 0")
        self.period = period
        self.name = name or f"ema_{period}"
        self.k = 2.0 / (period + 1)
        self._count = 0
        self._seed_sum = 0.0
        self._value: Optional[float] = None

    @property
    def warmup(self) -> int:
        return self.period

    @property
    def value(self) -> Optional[float]:
        return self._value

    def update_value(self, x: float) -> Optional[float]:
        self._count += 1
        if self._value is None:
            self._seed_sum += x
            if self._count == self.period:
                self._value = self._seed_sum / self.period
        else:
            self._value = self._value + self.k * (x - self._value)
        return self._value

    def update(self, bar: Bar) -> Optional[float]:
        return self.update_value(bar.close)


@dataclass(frozen=True)
class MACDValue:
    macd: float
    signal: float
    histogram: float


class MACD(Indicator):
    """MACD line (EMA fast - EMA slow), its signal EMA and the histogram."""

    def __init__(self, fast: int = 12, slow: int = 26, signal: int = 9, name: str = "macd"):
        if fast >= slow:
            raise ValueError("MACD fast period must be < slow period")
        self.name = name
        self.fast = EMA(fast)
        self.slow = EMA(slow)
        self.signal = EMA(signal)
        self._value: Optional[MACDValue] = None

    @property
    def warmup(self) -> int:
        return self.slow.period + self.signal.period - 1

    @property
    def value(self) -> Optional[MACDValue]:
        return self._value

    def update(self, bar: Bar) -> Optional[MACDValue]:
        fast = self.fast.update(bar)
        slow = self.slow.update(bar)
        if fast is None or slow is None:
            return None
        line = fast - slow
        sig = self.signal.update_value(line)
        if sig is not None:
            self._value = MACDValue(macd=line, signal=sig, histogram=line - sig)
        return self._value
