"""Abstract incremental indicator and the per-bar snapshot handed to strategies."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from tradesim.core.errors import IndicatorNotReadyError
from tradesim.core.types import Bar


class Indicator(ABC):
    """Incremental indicator: O(1) state, one update per closed bar."""

    name: str = "indicator"

    @property
    @abstractmethod
    def warmup(self) -> int:
        """Bars that must be observed before `value` is valid."""
        pass

    @property
    @abstractmethod
    def value(self) -> Optional[Any]:
        """Current value, or None while warming up."""
        pass

    @abstractmethod
    def update(self, bar: Bar) -> Optional[Any]:
        """Consume one bar and return the new value (None while warming up)."""
        pass

    @property
    def ready(self) -> bool:
        return self.value is not None


@dataclass(frozen=True)
class IndicatorSnapshot:
    """
    Indicator values after a bar. Not-ready indicators are stored as None and
    reading them with [] raises IndicatorNotReadyError.
    """
    timestamp: datetime
    bar_index: int
    values: dict = field(default_factory=dict)
    warmups: dict = field(default_factory=dict)

    def __getitem__(self, name: str) -> Any:
        if name not in self.values:
            raise KeyError(f"Unknown indicator: {name}")
        value = self.values[name]
        if value is None:
            raise IndicatorNotReadyError(
                f"Indicator {name} not ready at bar {self.bar_index}",
                {"indicator": name, "bar_index": self.bar_index, "warmup": self.warmups.get(name)},
            )
        return value

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def get(self, name: str, default: Any = None) -> Any:
        value = self.values.get(name)
        return default if value is None else value

    def is_ready(self, names: Optional[Iterable[str]] = None) -> bool:
        keys = self.values.keys() if names is None else names
        return all(self.values.get(k) is not None for k in keys)
