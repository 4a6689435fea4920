"""
Position lifecycle manager for one symbol.

Drives FLAT/OPEN transitions from signals, trailing stops and forced
liquidation. Entries and pyramids are cleared by the risk manager first; every
transition that touches the market is acknowledged by the executor before it is
committed, so a failed fill leaves lots and balance untouched.
"""

from __future__ import annotations
import logging
from dataclasses import asdict, replace
from datetime import datetime
from typing import Optional

from tradesim.core.config import SimulationConfig
from tradesim.core.errors import ExecutionError, InvariantViolation
from tradesim.core.types import (
    Bar,
    ClosedTrade,
    EquityPoint,
    ExitReason,
    Lot,
    Signal,
    SignalKind,
    SignalOutcome,
    SignalStatus,
)
from tradesim.execution.base import ExecutionClient, OrderIntent, OrderResult
from tradesim.positions.lots import PositionBook
from tradesim.positions.trailing import TrailingStop
from tradesim.risk.manager import RiskManager

logger = logging.getLogger("tradesim.positions")


class PositionLifecycleManager:

    def __init__(
        self,
        config: SimulationConfig,
        risk_manager: RiskManager,
        executor: ExecutionClient,
    ):
        self.config = config
        self.symbol = config.symbol
        self.risk_manager = risk_manager
        self.executor = executor
        self.book = PositionBook(config.symbol, config.position.max_lots, config.position.exit_mode)
        self.trailing = TrailingStop(config.trailing_stop)
        self.initial_balance = config.initial_balance
        self.balance = config.initial_balance
        self.trades: list[ClosedTrade] = []
        self.outcomes: list[SignalOutcome] = []
        self.equity_curve: list[EquityPoint] = []
        self._peak_equity = config.initial_balance
        self._accepted_qty = 0.0
        self._closed_qty = 0.0

    # --- views ---------------------------------------------------------------

    def lots_view(self) -> tuple[Lot, ...]:
        """Copies of open lots, safe to hand to a strategy."""
        return tuple(replace(lot) for lot in self.book.lots)

    def equity(self, mark: float) -> float:
        return self.balance + self.book.unrealized_pnl(mark)

    # --- per-bar steps -------------------------------------------------------

    def process_trailing(self, bar: Bar, atr: Optional[float]) -> list[ClosedTrade]:
        """Close armed lots whose level this bar crosses, then advance the rest."""
        closed: list[ClosedTrade] = []
        for lot in self.book.exit_order():
            price = self.trailing.triggered(lot, bar)
            if price is None:
                continue
            trade = self._close_via_executor(lot, price, bar.timestamp, ExitReason.TRAILING_STOP, SignalKind.EXIT)
            if trade is not None:
                closed.append(trade)
        for lot in self.book.lots:
            self.trailing.update(lot, bar, atr)
        return closed

    def handle(self, signal: Signal, bar: Bar, atr: Optional[float]) -> SignalOutcome:
        if signal.kind.is_exit:
            outcome = self._handle_exit(signal, bar)
        elif signal.kind is SignalKind.ENTRY:
            outcome = self._handle_open(signal, bar, atr, pyramid=False)
        else:
            outcome = self._handle_open(signal, bar, atr, pyramid=True)
        self.outcomes.append(outcome)
        logger.debug(
            "%s %s %s %s -> %s %s",
            self.symbol, signal.timestamp, signal.kind.value, signal.direction.value,
            outcome.status.value, outcome.reason,
        )
        return outcome

    def mark(self, bar: Bar) -> EquityPoint:
        """Append the equity point for this bar and feed the risk manager."""
        equity = self.equity(bar.close)
        self._peak_equity = max(self._peak_equity, equity)
        dd = (self._peak_equity - equity) / self._peak_equity if self._peak_equity > 0 else 0.0
        point = EquityPoint(timestamp=bar.timestamp, balance=self.balance, equity=equity, drawdown=dd)
        self.equity_curve.append(point)
        self.risk_manager.mark_to_market(self.symbol, equity - self.initial_balance, bar.timestamp)
        return point

    def liquidate_all(self, bar: Bar, reason: ExitReason) -> list[ClosedTrade]:
        """
        Settle every open lot at the bar's close (END_OF_RUN / CANCELLED).
        This is an accounting mark-out, not an order: no slippage, commission only.
        The last equity point is restated to the settled values.
        """
        closed = []
        for lot in self.book.exit_order():
            fee = self.executor.commission(bar.close * lot.quantity)
            closed.append(self._commit_close(lot, bar.close, bar.timestamp, reason, fee))
        if closed and self.equity_curve and self.equity_curve[-1].timestamp == bar.timestamp:
            last = self.equity_curve.pop()
            equity = self.balance
            self._peak_equity = max([self.initial_balance, equity] + [p.equity for p in self.equity_curve])
            dd = (self._peak_equity - equity) / self._peak_equity if self._peak_equity > 0 else 0.0
            self.equity_curve.append(replace(last, balance=self.balance, equity=equity, drawdown=dd))
            self.risk_manager.mark_to_market(self.symbol, equity - self.initial_balance, bar.timestamp)
        return closed

    # --- transitions ---------------------------------------------------------

    def _handle_exit(self, signal: Signal, bar: Bar) -> SignalOutcome:
        if self.book.is_flat:
            return SignalOutcome(signal, SignalStatus.IGNORED, "no open position")
        if signal.direction is not self.book.direction:
            return SignalOutcome(signal, SignalStatus.IGNORED, f"open position is {self.book.direction.value}")

        if signal.kind is SignalKind.EXIT:
            targets = [self.book.select_exit()]
            reason = ExitReason.SIGNAL
        else:
            targets = self.book.exit_order()
            reason = ExitReason.EMERGENCY
        failed = []
        for lot in targets:
            if self._close_via_executor(lot, signal.price, bar.timestamp, reason, signal.kind) is None:
                failed.append(lot.lot_id)
        if failed:
            signal.diagnostics["execution_error"] = f"close failed for lots {failed}"
            closed = len(targets) - len(failed)
            if closed == 0:
                return SignalOutcome(signal, SignalStatus.REJECTED, f"close failed for lots {failed}")
            # the lots that did fill stay closed, so the signal took partial effect
            signal.diagnostics["partial_exit"] = True
            return SignalOutcome(
                signal,
                SignalStatus.ACCEPTED,
                f"closed {closed}/{len(targets)} lot(s); failed lots {failed}",
            )
        return SignalOutcome(signal, SignalStatus.ACCEPTED, f"closed {len(targets)} lot(s)")

    def _handle_open(self, signal: Signal, bar: Bar, atr: Optional[float], pyramid: bool) -> SignalOutcome:
        book = self.book
        if not pyramid and not book.is_flat:
            if book.direction is signal.direction:
                return SignalOutcome(signal, SignalStatus.IGNORED, "position already open")
            return SignalOutcome(signal, SignalStatus.IGNORED, f"opposite {book.direction.value} position open")
        if pyramid:
            if book.is_flat:
                return SignalOutcome(signal, SignalStatus.IGNORED, "no position to pyramid")
            if book.direction is not signal.direction:
                return SignalOutcome(signal, SignalStatus.IGNORED, f"open position is {book.direction.value}")
            if not self.config.position.pyramiding_enabled:
                return SignalOutcome(signal, SignalStatus.IGNORED, "pyramiding disabled")
            if book.n_lots >= book.max_lots:
                return SignalOutcome(signal, SignalStatus.IGNORED, f"max_lots {book.max_lots} reached")

        lot_id = book.next_lot_id()
        risk = self.risk_manager.evaluate(self.symbol, self.config.position.position_size, signal.price, lot_id)
        if not risk.allowed:
            signal.diagnostics["risk_veto"] = risk.reason
            logger.info("%s %s %s vetoed: %s", self.symbol, signal.kind.value, signal.direction.value, risk.reason)
            return SignalOutcome(signal, SignalStatus.VETOED, risk.reason)

        intent = OrderIntent(
            symbol=self.symbol,
            kind=signal.kind,
            direction=signal.direction,
            quantity=risk.quantity,
            price=signal.price,
            timestamp=bar.timestamp,
            lot_id=lot_id,
            reason=signal.reason,
        )
        result = self._execute(intent)
        if not result.success:
            self.risk_manager.register_close(self.symbol, lot_id)
            signal.diagnostics["execution_error"] = result.message
            logger.warning("%s %s rejected by executor: %s", self.symbol, signal.kind.value, result.message)
            return SignalOutcome(signal, SignalStatus.REJECTED, result.message)

        qty = result.quantity if result.quantity else risk.quantity
        lot = Lot(
            lot_id=lot_id,
            symbol=self.symbol,
            direction=signal.direction,
            entry_price=result.avg_price if result.avg_price else signal.price,
            quantity=qty,
            entry_time=bar.timestamp,
            entry_fee=result.fee,
            entry_atr=atr,
        )
        book.add(lot)
        self._accepted_qty += qty
        self.risk_manager.register_open(self.symbol, lot_id, lot.notional)
        logger.debug(
            "%s opened lot %d %s qty=%.6f @ %.6f (%d/%d)",
            self.symbol, lot_id, lot.direction.value, qty, lot.entry_price, book.n_lots, book.max_lots,
        )
        return SignalOutcome(signal, SignalStatus.ACCEPTED, f"lot {lot_id} opened")

    def _execute(self, intent: OrderIntent) -> OrderResult:
        try:
            return self.executor.execute(intent)
        except ExecutionError as e:
            return OrderResult(success=False, message=e.message)

    def _close_via_executor(
        self,
        lot: Lot,
        price: float,
        timestamp: datetime,
        reason: ExitReason,
        kind: SignalKind,
    ) -> Optional[ClosedTrade]:
        intent = OrderIntent(
            symbol=self.symbol,
            kind=kind,
            direction=lot.direction,
            quantity=lot.quantity,
            price=price,
            timestamp=timestamp,
            lot_id=lot.lot_id,
            reason=reason.value,
        )
        result = self._execute(intent)
        if not result.success:
            logger.warning("%s close of lot %d rejected: %s", self.symbol, lot.lot_id, result.message)
            return None
        fill = result.avg_price if result.avg_price else price
        return self._commit_close(lot, fill, timestamp, reason, result.fee)

    def _commit_close(
        self,
        lot: Lot,
        exit_price: float,
        timestamp: datetime,
        reason: ExitReason,
        exit_fee: float,
    ) -> ClosedTrade:
        if timestamp < lot.entry_time:
            raise InvariantViolation(
                f"{self.symbol}: lot {lot.lot_id} exit before entry",
                {**self.state_dump(), "exit_time": str(timestamp)},
            )
        fees = lot.entry_fee + exit_fee
        pnl = lot.gross_pnl(exit_price) - fees
        trade = ClosedTrade(
            symbol=self.symbol,
            direction=lot.direction,
            quantity=lot.quantity,
            entry_price=lot.entry_price,
            exit_price=exit_price,
            pnl=pnl,
            pnl_pct=pnl / lot.notional * 100.0 if lot.notional else 0.0,
            entry_time=lot.entry_time,
            exit_time=timestamp,
            exit_reason=reason,
            fees=fees,
            lot_id=lot.lot_id,
        )
        self.book.remove(lot)
        self._closed_qty += lot.quantity
        self.balance += pnl
        self.trades.append(trade)
        self.risk_manager.register_close(self.symbol, lot.lot_id)
        self.risk_manager.record_trade(trade)
        logger.info(
            "%s closed lot %d %s qty=%.6f %.6f -> %.6f pnl=%.2f (%s)",
            self.symbol, lot.lot_id, lot.direction.value, lot.quantity,
            lot.entry_price, exit_price, pnl, reason.value,
        )
        return trade

    # --- invariants ------------------------------------------------------------

    def check_invariants(self) -> None:
        """Per-bar checks: lot bounds and quantity conservation."""
        self.book.check_invariants()
        expected_open = self._accepted_qty - self._closed_qty
        if abs(expected_open - self.book.total_quantity) > 1e-9 * max(1.0, abs(expected_open)):
            raise InvariantViolation(
                f"{self.symbol}: lot quantity not conserved",
                {**self.state_dump(), "accepted": self._accepted_qty, "closed": self._closed_qty},
            )

    def reconcile(self) -> None:
        """Balance must equal initial balance plus the ledger pnl."""
        realized = self.initial_balance + sum(t.pnl for t in self.trades)
        if abs(realized - self.balance) > 1e-6 * max(1.0, abs(self.balance)):
            raise InvariantViolation(
                f"{self.symbol}: balance {self.balance} != initial + realized pnl {realized}",
                self.state_dump(),
            )

    def state_dump(self) -> dict:
        return {
            **self.book.state_dump(),
            "balance": self.balance,
            "initial_balance": self.initial_balance,
            "closed_trades": len(self.trades),
            "risk": asdict(self.risk_manager.state()),
        }
