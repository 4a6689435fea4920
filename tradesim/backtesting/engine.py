"""
Backtest engine: one symbol, one synchronous pipeline per closed bar.

    validate bar -> indicators -> trailing stops -> strategy signals
    (exits first) -> risk + execution per signal -> equity point

Open lots are settled at the last close with END_OF_RUN, or CANCELLED when the
cancel event was set (checked between bars only).
"""

from __future__ import annotations
import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional, Sequence

from tradesim.analytics.metrics import MetricsSnapshot, compute_metrics
from tradesim.core.config import SimulationConfig
from tradesim.core.errors import DataError, InvariantViolation
from tradesim.core.logger import symbol_context
from tradesim.core.types import Bar, ClosedTrade, EquityPoint, ExitReason, Signal, SignalOutcome
from tradesim.execution.base import ExecutionClient
from tradesim.execution.simulated import SimulatedExecutionClient
from tradesim.indicators.engine import IndicatorEngine
from tradesim.indicators.volatility import ATR
from tradesim.positions.lifecycle import PositionLifecycleManager
from tradesim.risk.manager import RiskManager, RiskState, SizingFn
from tradesim.strategies.base import BaseStrategy, StrategyContext
from tradesim.strategies.registry import build_strategy

logger = logging.getLogger("tradesim.backtest")


@dataclass
class BacktestResult:
    """Backtest output for one symbol."""
    symbol: str
    initial_balance: float
    final_balance: float
    final_equity: float
    trades: List[ClosedTrade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    signals: List[SignalOutcome] = field(default_factory=list)
    metrics: Optional[MetricsSnapshot] = None
    risk_state: Optional[RiskState] = None
    bars_processed: int = 0
    cancelled: bool = False

    @property
    def total_pnl(self) -> float:
        return sum(t.pnl for t in self.trades)


def order_signals(signals: Sequence[Signal]) -> list[Signal]:
    """Exits before entries/pyramids; otherwise keep strategy order."""
    return sorted(signals, key=lambda s: 0 if s.kind.is_exit else 1)


class BacktestEngine:
    """
    Runs one strategy over one symbol's bars. Config is validated at
    construction so bad parameters fail before any bar is read.
    """

    def __init__(
        self,
        config: SimulationConfig,
        strategy: Optional[BaseStrategy] = None,
        executor: Optional[ExecutionClient] = None,
        risk_manager: Optional[RiskManager] = None,
        sizing_fn: Optional[SizingFn] = None,
    ):
        self.config = config.validate()
        self.strategy = strategy or build_strategy(config.strategy)
        self.executor = executor or SimulatedExecutionClient(
            slippage_bps=config.slippage_bps,
            commission_bps=config.commission_bps,
        )
        self.risk_manager = risk_manager or RiskManager(
            config.risk,
            initial_balance=config.initial_balance,
            sizing_fn=sizing_fn,
        )

    def _build_indicators(self) -> IndicatorEngine:
        engine = IndicatorEngine(self.strategy.build_indicators())
        if not engine.has("atr"):
            # trailing stops and tracked ATR always need one
            engine.add(ATR(self.config.strategy.atr_period, name="atr"))
        return engine

    def _validate_bar(self, bar: Bar, prev: Optional[Bar], max_gap: Optional[timedelta]) -> None:
        symbol = self.config.symbol
        if bar.symbol != symbol:
            raise DataError(f"{symbol}: got bar for {bar.symbol}", symbol=symbol)
        prices = (bar.open, bar.high, bar.low, bar.close)
        if not all(math.isfinite(p) and p > 0 for p in prices):
            raise DataError(f"{symbol}: invalid prices at {bar.timestamp}: {prices}", symbol=symbol)
        if bar.high < bar.low or not (bar.low <= bar.open <= bar.high and bar.low <= bar.close <= bar.high):
            raise DataError(f"{symbol}: inconsistent OHLC at {bar.timestamp}", symbol=symbol,
                            details={"bar": prices})
        if prev is None:
            return
        if bar.timestamp <= prev.timestamp:
            raise DataError(
                f"{symbol}: bars out of order or duplicated ({prev.timestamp} -> {bar.timestamp})",
                symbol=symbol,
            )
        if max_gap is not None and bar.timestamp - prev.timestamp > max_gap:
            raise DataError(
                f"{symbol}: missing bars between {prev.timestamp} and {bar.timestamp}",
                symbol=symbol,
                details={"gap": str(bar.timestamp - prev.timestamp), "max_gap": str(max_gap)},
            )

    def run(self, bars: Sequence[Bar], cancel_event: Optional[threading.Event] = None) -> BacktestResult:
        with symbol_context(self.config.symbol):
            return self._run(bars, cancel_event)

    def _run(self, bars: Sequence[Bar], cancel_event: Optional[threading.Event]) -> BacktestResult:
        cfg = self.config
        if not bars:
            raise DataError(f"No bars for {cfg.symbol}", symbol=cfg.symbol)
        indicators = self._build_indicators()
        lifecycle = PositionLifecycleManager(cfg, self.risk_manager, self.executor)
        required = self.strategy.required_indicators
        required_bars = self.strategy.required_bars
        max_gap = None
        if cfg.max_gap_bars:
            max_gap = timedelta(minutes=cfg.timeframe_minutes * cfg.max_gap_bars)

        logger.info(
            "Backtest %s: %d bars, strategy=%s, exit_mode=%s, max_lots=%d",
            cfg.symbol, len(bars), self.strategy.name, cfg.position.exit_mode.value, cfg.position.max_lots,
        )
        prev_bar: Optional[Bar] = None
        prev_snapshot = None
        cancelled = False
        processed = 0
        try:
            for bar in bars:
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    logger.warning("%s cancelled after %d bars", cfg.symbol, processed)
                    break
                self._validate_bar(bar, prev_bar, max_gap)
                snapshot = indicators.update(bar)
                atr = snapshot.get("atr")
                lifecycle.process_trailing(bar, atr)

                if (
                    snapshot.bar_index >= required_bars
                    and snapshot.is_ready(required)
                    and prev_snapshot is not None
                    and prev_snapshot.is_ready(required)
                ):
                    ctx = StrategyContext(
                        symbol=cfg.symbol,
                        bar=bar,
                        snapshot=snapshot,
                        previous=prev_snapshot,
                        lots=lifecycle.lots_view(),
                        tracked_atr=lifecycle.book.tracked_atr,
                    )
                    for signal in order_signals(self.strategy.evaluate(ctx)):
                        lifecycle.handle(signal, bar, atr)

                lifecycle.mark(bar)
                lifecycle.check_invariants()
                prev_bar, prev_snapshot = bar, snapshot
                processed += 1

            if prev_bar is not None:
                lifecycle.liquidate_all(prev_bar, ExitReason.CANCELLED if cancelled else ExitReason.END_OF_RUN)
            lifecycle.check_invariants()
            lifecycle.reconcile()
        except InvariantViolation as e:
            logger.critical("Invariant violation in %s: %s | state=%s", cfg.symbol, e.message, e.details)
            raise
        except DataError:
            # open lots are abandoned unsettled; a shared risk manager must not keep counting them
            self.risk_manager.release_symbol(cfg.symbol)
            raise

        final_equity = lifecycle.equity_curve[-1].equity if lifecycle.equity_curve else lifecycle.balance
        metrics = compute_metrics(lifecycle.trades, lifecycle.equity_curve, cfg.initial_balance)
        logger.info(
            "Backtest %s done: %d trades, pnl=%.2f, max_dd=%.2f%%%s",
            cfg.symbol, metrics.total_trades, metrics.total_pnl, metrics.max_drawdown_pct,
            " (cancelled)" if cancelled else "",
        )
        return BacktestResult(
            symbol=cfg.symbol,
            initial_balance=cfg.initial_balance,
            final_balance=lifecycle.balance,
            final_equity=final_equity,
            trades=list(lifecycle.trades),
            equity_curve=list(lifecycle.equity_curve),
            signals=list(lifecycle.outcomes),
            metrics=metrics,
            risk_state=self.risk_manager.state(),
            bars_processed=processed,
            cancelled=cancelled,
        )
