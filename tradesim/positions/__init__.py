"""Positions: lot book, FIFO/LIFO exit policy, trailing stops, lifecycle manager."""

from tradesim.positions.lots import PositionBook, select_exit_lot, exit_order
from tradesim.positions.trailing import TrailingStop
from tradesim.positions.lifecycle import PositionLifecycleManager

__all__ = [
    "PositionBook",
    "select_exit_lot",
    "exit_order",
    "TrailingStop",
    "PositionLifecycleManager",
]
