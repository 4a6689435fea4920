"""
Core data types for bars, signals, lots, closed trades and equity points.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1


class SignalKind(str, Enum):
    ENTRY = "ENTRY"
    PYRAMID = "PYRAMID"
    EXIT = "EXIT"
    EMERGENCY_EXIT = "EMERGENCY_EXIT"

    @property
    def is_exit(self) -> bool:
        return self in (SignalKind.EXIT, SignalKind.EMERGENCY_EXIT)


class SignalStatus(str, Enum):
    ACCEPTED = "ACCEPTED"
    VETOED = "VETOED"      # risk manager said no
    REJECTED = "REJECTED"  # executor failed, transition rolled back
    IGNORED = "IGNORED"    # lifecycle policy (max lots, wrong direction, ...)


class ExitReason(str, Enum):
    SIGNAL = "signal"
    EMERGENCY = "emergency"
    TRAILING_STOP = "trailing_stop"
    END_OF_RUN = "end_of_run"
    CANCELLED = "cancelled"


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class Bar:
    """OHLCV candle. Immutable once ingested."""
    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def hl2(self) -> float:
        return (self.high + self.low) / 2.0


@dataclass
class Signal:
    """Advisory signal from a strategy. The lifecycle manager decides whether to honor it."""
    kind: SignalKind
    direction: Direction
    price: float
    timestamp: datetime
    strength: float = 0.0
    reason: str = ""
    symbol: str = ""
    diagnostics: dict = field(default_factory=dict)


@dataclass(frozen=True)
class SignalOutcome:
    """What happened to a signal once it reached the lifecycle manager."""
    signal: Signal
    status: SignalStatus
    reason: str = ""


@dataclass
class Lot:
    """One open unit of a position with its own entry and trailing-stop state."""
    lot_id: int
    symbol: str
    direction: Direction
    entry_price: float
    quantity: float
    entry_time: datetime
    entry_fee: float = 0.0
    highest_price: float = 0.0
    lowest_price: float = 0.0
    trailing_armed: bool = False
    trailing_level: Optional[float] = None
    entry_atr: Optional[float] = None

    def __post_init__(self):
        if not self.highest_price:
            self.highest_price = self.entry_price
        if not self.lowest_price:
            self.lowest_price = self.entry_price

    @property
    def notional(self) -> float:
        return self.entry_price * self.quantity

    def gross_pnl(self, price: float) -> float:
        return (price - self.entry_price) * self.quantity * self.direction.sign

    def unrealized_pnl(self, mark: float) -> float:
        """Mark-to-market pnl net of the fee already paid on entry."""
        return self.gross_pnl(mark) - self.entry_fee

    def profit_pct(self, price: float) -> float:
        if self.entry_price <= 0:
            return 0.0
        return (price - self.entry_price) / self.entry_price * self.direction.sign


@dataclass(frozen=True)
class ClosedTrade:
    """Closed lot for the ledger. Created exactly once per lot closure."""
    symbol: str
    direction: Direction
    quantity: float
    entry_price: float
    exit_price: float
    pnl: float
    pnl_pct: float
    entry_time: datetime
    exit_time: datetime
    exit_reason: ExitReason
    fees: float = 0.0
    lot_id: int = 0

    @property
    def holding_seconds(self) -> float:
        return (self.exit_time - self.entry_time).total_seconds()

    @property
    def is_win(self) -> bool:
        return self.pnl > 0


@dataclass(frozen=True)
class EquityPoint:
    """One point per processed bar."""
    timestamp: datetime
    balance: float
    equity: float
    drawdown: float = 0.0
