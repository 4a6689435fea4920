"""RSI with Wilder smoothing."""

from __future__ import annotations
from typing import Optional

from tradesim.core.types import Bar
from tradesim.indicators.base import Indicator


class RSI(Indicator):
    """
    Relative strength index. Needs `period` price changes, so it is ready at
    bar period + 1. Seed = simple averages of the first gains/losses.
    RSI is 100 when there are gains and no losses, 50 when price did not move.
    """

    def __init__(self, period: int = 14, name: Optional[str] = None):
        if period < 1:
            raise ValueError("RSI period must be > 0")
        self.period = period
        self.name = name or "rsi"
        self._prev_close: Optional[float] = None
        self._changes = 0
        self._gain_sum = 0.0
        self._loss_sum = 0.0
        self._avg_gain: Optional[float] = None
        self._avg_loss: Optional[float] = None

    @property
    def warmup(self) -> int:
        return self.period + 1

    @property
    def value(self) -> Optional[float]:
        if self._avg_gain is None or self._avg_loss is None:
            return None
        if self._avg_loss == 0:
            return 100.0 if self._avg_gain > 0 else 50.0
        rs = self._avg_gain / self._avg_loss
        return 100.0 - 100.0 / (1.0 + rs)

    def update(self, bar: Bar) -> Optional[float]:
        close = bar.close
        if self._prev_close is None:
            self._prev_close = close
            return None
        change = close - self._prev_close
        self._prev_close = close
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0
        self._changes += 1
        if self._avg_gain is None:
            self._gain_sum += gain
            self._loss_sum += loss
            if self._changes == self.period:
                self._avg_gain = self._gain_sum / self.period
                self._avg_loss = self._loss_sum / self.period
        else:
            p = self.period
            self._avg_gain = (self._avg_gain * (p - 1) + gain) / p
            self._avg_loss = (self._avg_loss * (p - 1) + loss) / p
        return self.value
