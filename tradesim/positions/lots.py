"""
Open lots for one symbol plus the tracked ATR, and the FIFO/LIFO exit policy.
"""

from __future__ import annotations
from dataclasses import asdict
from typing import Optional

from tradesim.core.config import ExitMode
from tradesim.core.errors import InvariantViolation
from tradesim.core.types import Direction, Lot


def select_exit_lot(lots: list[Lot], mode: ExitMode) -> Lot:
    """FIFO: oldest entry first. LIFO: newest entry first. Ties break on lot id."""
    if not lots:
        raise ValueError("no open lots")
    key = lambda lot: (lot.entry_time, lot.lot_id)
    return min(lots, key=key) if mode is ExitMode.FIFO else max(lots, key=key)


def exit_order(lots: list[Lot], mode: ExitMode) -> list[Lot]:
    """All lots in the order the exit policy would close them."""
    ordered = sorted(lots, key=lambda lot: (lot.entry_time, lot.lot_id))
    return ordered if mode is ExitMode.FIFO else list(reversed(ordered))


class PositionBook:
    """
    Lots of one symbol, all in one direction, at most `max_lots` of them.
    `tracked_atr` is the ATR captured when the newest lot opened; cleared when flat.
    """

    def __init__(self, symbol: str, max_lots: int, exit_mode: ExitMode = ExitMode.FIFO):
        self.symbol = symbol
        self.max_lots = max_lots
        self.exit_mode = exit_mode
        self._lots: list[Lot] = []
        self._next_id = 1
        self.tracked_atr: Optional[float] = None

    @property
    def lots(self) -> tuple[Lot, ...]:
        return tuple(self._lots)

    @property
    def direction(self) -> Optional[Direction]:
        return self._lots[0].direction if self._lots else None

    @property
    def is_flat(self) -> bool:
        return not self._lots

    @property
    def n_lots(self) -> int:
        return len(self._lots)

    @property
    def total_quantity(self) -> float:
        return sum(lot.quantity for lot in self._lots)

    @property
    def open_notional(self) -> float:
        return sum(lot.notional for lot in self._lots)

    def next_lot_id(self) -> int:
        lot_id = self._next_id
        self._next_id += 1
        return lot_id

    def add(self, lot: Lot) -> None:
        if self._lots and lot.direction is not self.direction:
            raise InvariantViolation(
                f"{self.symbol}: cannot add {lot.direction.value} lot to {self.direction.value} position",
                self.state_dump(),
            )
        if len(self._lots) >= self.max_lots:
            raise InvariantViolation(f"{self.symbol}: max_lots {self.max_lots} exceeded", self.state_dump())
        self._lots.append(lot)
        if lot.entry_atr is not None:
            self.tracked_atr = lot.entry_atr

    def remove(self, lot: Lot) -> None:
        self._lots.remove(lot)
        if not self._lots:
            self.tracked_atr = None

    def select_exit(self) -> Lot:
        return select_exit_lot(self._lots, self.exit_mode)

    def exit_order(self) -> list[Lot]:
        return exit_order(self._lots, self.exit_mode)

    def unrealized_pnl(self, mark: float) -> float:
        return sum(lot.unrealized_pnl(mark) for lot in self._lots)

    def check_invariants(self) -> None:
        if len(self._lots) > self.max_lots:
            raise InvariantViolation(f"{self.symbol}: {len(self._lots)} lots > max_lots {self.max_lots}",
                                     self.state_dump())
        if len({lot.direction for lot in self._lots}) > 1:
            raise InvariantViolation(f"{self.symbol}: mixed lot directions", self.state_dump())
        for lot in self._lots:
            if lot.quantity <= 0:
                raise InvariantViolation(f"{self.symbol}: lot {lot.lot_id} has quantity {lot.quantity}",
                                         self.state_dump())

    def state_dump(self) -> dict:
        return {
            "symbol": self.symbol,
            "max_lots": self.max_lots,
            "exit_mode": self.exit_mode.value,
            "tracked_atr": self.tracked_atr,
            "lots": [asdict(lot) for lot in self._lots],
        }
