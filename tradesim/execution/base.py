"""Abstract execution interface: synchronous execute/confirm for order intents."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from tradesim.core.types import Direction, OrderSide, SignalKind


@dataclass(frozen=True)
class OrderIntent:
    """
    Request to open (ENTRY/PYRAMID) or close (EXIT/EMERGENCY_EXIT) quantity.
    `direction` is the position direction, not the order side.
    """
    symbol: str
    kind: SignalKind
    direction: Direction
    quantity: float
    price: float
    timestamp: datetime
    lot_id: Optional[int] = None
    reason: str = ""

    @property
    def is_closing(self) -> bool:
        return self.kind.is_exit

    @property
    def side(self) -> OrderSide:
        buying = self.direction is Direction.LONG
        if self.is_closing:
            buying = not buying
        return OrderSide.BUY if buying else OrderSide.SELL


@dataclass
class OrderResult:
    """Acknowledgement from the executor. Nothing is committed unless success is True."""
    success: bool
    order_id: Optional[str] = None
    avg_price: Optional[float] = None
    quantity: Optional[float] = None
    fee: float = 0.0
    message: str = ""


class ExecutionClient(ABC):
    """Fills order intents. May return success=False or raise ExecutionError."""

    @abstractmethod
    def execute(self, intent: OrderIntent) -> OrderResult:
        """Fill the intent and return fill price, quantity and fee."""
        pass

    def commission(self, notional: float) -> float:
        """Fee charged for a settlement that does not go through execute()."""
        return 0.0
