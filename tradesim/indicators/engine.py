"""Indicator engine: feeds each bar to a fixed set of indicators and snapshots the result."""

from __future__ import annotations
import logging
from typing import Iterable, Optional

from tradesim.core.types import Bar
from tradesim.indicators.base import Indicator, IndicatorSnapshot

logger = logging.getLogger("tradesim.indicators")


class IndicatorEngine:
    """
    Owns named indicators for one symbol. `update(bar)` advances all of them
    and returns an immutable snapshot; not-ready values are None.
    """

    def __init__(self, indicators: Iterable[Indicator]):
        self._indicators: dict[str, Indicator] = {}
        for ind in indicators:
            if ind.name in self._indicators:
                raise ValueError(f"Duplicate indicator name: {ind.name}")
            self._indicators[ind.name] = ind
        self._bars_seen = 0
        self._last: Optional[IndicatorSnapshot] = None

    @property
    def names(self) -> list[str]:
        return list(self._indicators)

    @property
    def bars_seen(self) -> int:
        return self._bars_seen

    @property
    def warmup(self) -> int:
        """Bars until every indicator is ready."""
        return max((ind.warmup for ind in self._indicators.values()), default=0)

    @property
    def last(self) -> Optional[IndicatorSnapshot]:
        return self._last

    def has(self, name: str) -> bool:
        return name in self._indicators

    def add(self, indicator: Indicator) -> None:
        if self._bars_seen:
            raise RuntimeError("Indicators cannot be added after the first bar")
        if indicator.name in self._indicators:
            raise ValueError(f"Duplicate indicator name: {indicator.name}")
        self._indicators[indicator.name] = indicator

    def update(self, bar: Bar) -> IndicatorSnapshot:
        for ind in self._indicators.values():
            ind.update(bar)
        self._bars_seen += 1
        snapshot = IndicatorSnapshot(
            timestamp=bar.timestamp,
            bar_index=self._bars_seen,
            values={name: ind.value for name, ind in self._indicators.items()},
            warmups={name: ind.warmup for name, ind in self._indicators.items()},
        )
        if self._last is not None and not self._last.is_ready() and snapshot.is_ready():
            logger.debug("%s indicators warmed up after %d bars", bar.symbol, self._bars_seen)
        self._last = snapshot
        return snapshot
