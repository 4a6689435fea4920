"""
Simulated execution: fills at the intent price moved against the trader by
slippage (bps), charges commission (bps) of fill notional.
"""

from __future__ import annotations
import itertools
import logging
import threading
from typing import Callable, Optional

from tradesim.core.types import OrderSide
from tradesim.execution.base import ExecutionClient, OrderIntent, OrderResult

logger = logging.getLogger("tradesim.execution")

# Returns a rejection message, or None to fill
RejectFn = Callable[[OrderIntent], Optional[str]]


class SimulatedExecutionClient(ExecutionClient):
    """Deterministic fills. `reject` lets tests and callers simulate broker failures."""

    def __init__(
        self,
        slippage_bps: float = 0.0,
        commission_bps: float = 0.0,
        reject: Optional[RejectFn] = None,
    ):
        self.slippage_bps = slippage_bps
        self.commission_bps = commission_bps
        self.reject = reject
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.fills: list[OrderIntent] = []

    def commission(self, notional: float) -> float:
        return abs(notional) * self.commission_bps / 10000.0

    def execute(self, intent: OrderIntent) -> OrderResult:
        if intent.quantity <= 0 or intent.price <= 0:
            return OrderResult(success=False, message=f"invalid order qty={intent.quantity} price={intent.price}")
        if self.reject is not None:
            message = self.reject(intent)
            if message:
                logger.debug("Rejected %s %s %s: %s", intent.symbol, intent.kind.value, intent.side.value, message)
                return OrderResult(success=False, message=message)
        slip = intent.price * self.slippage_bps / 10000.0
        fill = intent.price + slip if intent.side is OrderSide.BUY else intent.price - slip
        with self._lock:
            order_id = f"SIM-{next(self._ids)}"
            self.fills.append(intent)
        return OrderResult(
            success=True,
            order_id=order_id,
            avg_price=fill,
            quantity=intent.quantity,
            fee=self.commission(fill * intent.quantity),
        )
