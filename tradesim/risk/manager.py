"""
Risk manager: loss-streak and drawdown circuit breakers, position sizing modes,
optional portfolio caps when one instance is shared across symbols.

Evaluated before every ENTRY/PYRAMID. Exits are never evaluated.
All state changes hold a lock so a shared instance is safe across worker threads.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from tradesim.core.config import RiskConfig, SizingMode
from tradesim.core.types import ClosedTrade
from tradesim.utils.quantities import round_quantity

logger = logging.getLogger("tradesim.risk")


@dataclass
class RiskResult:
    """Result of risk check: allowed or rejected + reason."""
    allowed: bool
    quantity: float = 0.0
    reason: str = ""


@dataclass(frozen=True)
class RiskState:
    consecutive_losses: int
    peak_equity: float
    current_equity: float
    current_drawdown: float
    trading_halted: bool
    halt_reason: str = ""
    open_positions: int = 0
    open_notional: float = 0.0


# sizing_fn(requested_quantity, state) -> quantity
SizingFn = Callable[[float, RiskState], float]


class RiskManager:
    """
    One instance per symbol, or one shared instance for a whole portfolio.
    Equity = initial_balance + sum of per-symbol net pnl reported via mark_to_market.

    The loss-streak cooldown is counted in bar times, not calls. A shared
    instance advances it with the newest bar time any symbol has marked, so
    symbols running ahead in their worker threads set the pace.
    """

    def __init__(
        self,
        config: RiskConfig,
        initial_balance: float,
        sizing_fn: Optional[SizingFn] = None,
        max_concurrent_positions: Optional[int] = None,
        max_total_risk: Optional[float] = None,
    ):
        self.config = config
        self.initial_balance = initial_balance
        self.sizing_fn = sizing_fn
        self.max_concurrent_positions = max_concurrent_positions
        self.max_total_risk = max_total_risk
        self._lock = threading.RLock()
        self._consecutive_losses = 0
        self._halted_bars = 0
        self._last_bar_time: Optional[datetime] = None
        self._peak_equity = initial_balance
        self._current_equity = initial_balance
        self._symbol_pnl: dict[str, float] = {}
        # symbol -> lot_id -> entry notional
        self._open: dict[str, dict[int, float]] = {}

    # --- state updates -------------------------------------------------

    def set_equity(self, equity: float) -> None:
        """Update current equity for drawdown check."""
        with self._lock:
            self._current_equity = equity
            if equity > self._peak_equity:
                self._peak_equity = equity

    def mark_to_market(self, symbol: str, net_pnl: float, timestamp: Optional[datetime] = None) -> None:
        """
        Record a symbol's realized + unrealized pnl after a bar. The cooldown
        advances once per new bar time; repeated or older timestamps (a second
        mark for the same bar, a lagging symbol of a shared instance) only
        refresh equity. Without a timestamp every call counts as a bar.
        """
        with self._lock:
            self._symbol_pnl[symbol] = net_pnl
            self.set_equity(self.initial_balance + sum(self._symbol_pnl.values()))
            if timestamp is not None:
                if self._last_bar_time is not None and timestamp <= self._last_bar_time:
                    return
                self._last_bar_time = timestamp
            if self._streak_halted() and self.config.loss_streak_cooldown_bars > 0:
                self._halted_bars += 1
                if self._halted_bars >= self.config.loss_streak_cooldown_bars:
                    logger.info(
                        "Loss streak cooldown over after %d bars, resetting streak of %d",
                        self._halted_bars, self._consecutive_losses,
                    )
                    self._consecutive_losses = 0
                    self._halted_bars = 0

    def record_trade(self, trade: ClosedTrade) -> None:
        """Loss extends the streak, a win resets it."""
        with self._lock:
            if trade.pnl < 0:
                self._consecutive_losses += 1
                if self._streak_halted():
                    logger.warning(
                        "%s: %d consecutive losses, new entries halted",
                        trade.symbol, self._consecutive_losses,
                    )
            else:
                if self._consecutive_losses:
                    logger.info("%s: winning trade resets loss streak of %d", trade.symbol, self._consecutive_losses)
                self._consecutive_losses = 0
                self._halted_bars = 0

    def register_open(self, symbol: str, lot_id: int, notional: float) -> None:
        with self._lock:
            self._open.setdefault(symbol, {})[lot_id] = notional

    def register_close(self, symbol: str, lot_id: int) -> None:
        with self._lock:
            lots = self._open.get(symbol, {})
            lots.pop(lot_id, None)
            if not lots:
                self._open.pop(symbol, None)

    def release_symbol(self, symbol: str) -> None:
        """
        Forget a symbol that stopped mid-run without settling: its lot
        reservations and its pnl share of equity. Loss streak and peak equity
        are kept.
        """
        with self._lock:
            released = self._open.pop(symbol, {})
            self._symbol_pnl.pop(symbol, None)
            self.set_equity(self.initial_balance + sum(self._symbol_pnl.values()))
        if released:
            logger.warning("%s: released %d open lot reservation(s)", symbol, len(released))

    # --- checks ----------------------------------------------------------

    def _streak_halted(self) -> bool:
        return self._consecutive_losses >= self.config.max_consecutive_losses

    def _drawdown(self) -> float:
        if self._peak_equity <= 0:
            return 0.0
        return max(0.0, (self._peak_equity - self._current_equity) / self._peak_equity)

    def _size(self, quantity: float, state: RiskState) -> float:
        mode = self.config.position_sizing_mode
        if mode is SizingMode.CONSERVATIVE:
            scaled = quantity / (1 + state.consecutive_losses)
            return round_quantity(scaled, self.config.min_quantity, self.config.quantity_step)
        if mode is SizingMode.CUSTOM and self.sizing_fn is not None:
            return float(self.sizing_fn(quantity, state))
        return quantity

    def evaluate(self, symbol: str, quantity: float, price: float, lot_id: Optional[int] = None) -> RiskResult:
        """
        Veto or size an ENTRY/PYRAMID. With a lot_id, an allowed result reserves
        its notional until register_close, so concurrent symbols cannot spend the
        same portfolio budget.
        """
        with self._lock:
            if self._streak_halted():
                return RiskResult(
                    allowed=False,
                    reason=f"consecutive losses {self._consecutive_losses} >= {self.config.max_consecutive_losses}",
                )
            dd = self._drawdown()
            if dd >= self.config.max_drawdown_stop:
                return RiskResult(
                    allowed=False,
                    reason=f"drawdown {dd:.4f} >= stop {self.config.max_drawdown_stop:.4f}",
                )
            if self.max_concurrent_positions is not None and symbol not in self._open:
                if len(self._open) >= self.max_concurrent_positions:
                    return RiskResult(
                        allowed=False,
                        reason=f"concurrent positions {len(self._open)} >= {self.max_concurrent_positions}",
                    )
            state = self.state()
            qty = self._size(quantity, state)
            if qty <= 0:
                return RiskResult(allowed=False, reason=f"{self.config.position_sizing_mode.value} size rounds to zero")
            if self.max_total_risk is not None and self.initial_balance > 0:
                total = (state.open_notional + qty * price) / self.initial_balance
                if total > self.max_total_risk:
                    return RiskResult(
                        allowed=False,
                        reason=f"total risk {total:.4f} > {self.max_total_risk:.4f}",
                    )
            if lot_id is not None:
                self._open.setdefault(symbol, {})[lot_id] = qty * price
            return RiskResult(allowed=True, quantity=qty)

    def state(self) -> RiskState:
        with self._lock:
            dd = self._drawdown()
            reason = ""
            if self._streak_halted():
                reason = "loss_streak"
            elif dd >= self.config.max_drawdown_stop:
                reason = "drawdown"
            return RiskState(
                consecutive_losses=self._consecutive_losses,
                peak_equity=self._peak_equity,
                current_equity=self._current_equity,
                current_drawdown=dd,
                trading_halted=bool(reason),
                halt_reason=reason,
                open_positions=len(self._open),
                open_notional=sum(n for lots in self._open.values() for n in lots.values()),
            )
