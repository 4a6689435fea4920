"""
Multi-symbol orchestrator: one (strategy, lifecycle, risk) triple per symbol,
run in worker threads, merged into a portfolio result afterwards.

Data errors fail only their symbol. Invariant violations abort the whole run.
Portfolio caps are reported from the merged ledger; they are enforced during
the run only when share_risk_manager is set.
"""

from __future__ import annotations
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from tradesim.analytics.metrics import MetricsSnapshot, compute_metrics
from tradesim.analytics.portfolio import (
    CrossSymbolAnalysis,
    PortfolioLimitReport,
    analyze_cross_symbol,
    check_portfolio_limits,
    combine_equity_curves,
)
from tradesim.backtesting.engine import BacktestEngine, BacktestResult
from tradesim.core.config import PortfolioConfig, SimulationConfig
from tradesim.core.errors import DataError
from tradesim.core.logger import symbol_context
from tradesim.core.types import ClosedTrade, EquityPoint
from tradesim.data.provider import DataProvider, load_bars
from tradesim.execution.base import ExecutionClient
from tradesim.risk.manager import RiskManager, SizingFn
from tradesim.strategies.base import BaseStrategy

logger = logging.getLogger("tradesim.orchestrator")

ExecutorFactory = Callable[[SimulationConfig], ExecutionClient]
StrategyFactory = Callable[[SimulationConfig], BaseStrategy]


@dataclass
class SymbolResult:
    symbol: str
    result: Optional[BacktestResult] = None
    error: Optional[DataError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class MultiSymbolResult:
    symbol_results: List[SymbolResult] = field(default_factory=list)
    trades: List[ClosedTrade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    metrics: Optional[MetricsSnapshot] = None
    cross_symbol: Optional[CrossSymbolAnalysis] = None
    limits: Optional[PortfolioLimitReport] = None
    cancelled: bool = False

    @property
    def by_symbol(self) -> Dict[str, SymbolResult]:
        return {r.symbol: r for r in self.symbol_results}

    @property
    def failed_symbols(self) -> List[str]:
        return [r.symbol for r in self.symbol_results if not r.ok]


class MultiSymbolOrchestrator:

    def __init__(
        self,
        portfolio: PortfolioConfig,
        data_provider: DataProvider,
        executor_factory: Optional[ExecutorFactory] = None,
        strategy_factory: Optional[StrategyFactory] = None,
        sizing_fn: Optional[SizingFn] = None,
    ):
        self.portfolio = portfolio.validate()
        self.data_provider = data_provider
        self.executor_factory = executor_factory
        self.strategy_factory = strategy_factory
        self.sizing_fn = sizing_fn
        self.shared_risk: Optional[RiskManager] = None
        if portfolio.share_risk_manager:
            # Risk limits come from the first symbol; the caps are portfolio-wide.
            first = portfolio.symbols[0]
            self.shared_risk = RiskManager(
                first.risk,
                initial_balance=portfolio.total_initial_balance,
                sizing_fn=sizing_fn,
                max_concurrent_positions=portfolio.max_concurrent_positions,
                max_total_risk=portfolio.max_total_risk,
            )

    def _engine(self, cfg: SimulationConfig) -> BacktestEngine:
        return BacktestEngine(
            cfg,
            strategy=self.strategy_factory(cfg) if self.strategy_factory else None,
            executor=self.executor_factory(cfg) if self.executor_factory else None,
            risk_manager=self.shared_risk,
            sizing_fn=self.sizing_fn,
        )

    def _run_symbol(self, cfg: SimulationConfig, cancel_event: threading.Event) -> SymbolResult:
        with symbol_context(cfg.symbol):
            try:
                bars = load_bars(self.data_provider, cfg.symbol, start=cfg.start_date, end=cfg.end_date)
                result = self._engine(cfg).run(bars, cancel_event)
            except DataError as e:
                logger.warning("Symbol %s failed: %s", cfg.symbol, e.message)
                return SymbolResult(symbol=cfg.symbol, error=e)
        return SymbolResult(symbol=cfg.symbol, result=result)

    def run(self, cancel_event: Optional[threading.Event] = None) -> MultiSymbolResult:
        cancel_event = cancel_event or threading.Event()
        configs = list(self.portfolio.symbols)
        # build engines once up front so configuration errors surface before any bar
        for cfg in configs:
            self._engine(cfg)
        logger.info(
            "Multi-symbol run: %d symbols, %d workers, shared risk=%s",
            len(configs), self.portfolio.max_workers, self.shared_risk is not None,
        )

        results: Dict[str, SymbolResult] = {}
        with ThreadPoolExecutor(max_workers=self.portfolio.max_workers, thread_name_prefix="tradesim") as executor:
            futures = {executor.submit(self._run_symbol, cfg, cancel_event): cfg.symbol for cfg in configs}
            try:
                for future in as_completed(futures):
                    symbol = futures[future]
                    results[symbol] = future.result()
            except BaseException:
                # fatal in one worker: stop the others at their next bar
                cancel_event.set()
                for f in futures:
                    f.cancel()
                raise

        ordered = [results[cfg.symbol] for cfg in configs]
        return self._merge(ordered, cancel_event.is_set())

    def _merge(self, symbol_results: List[SymbolResult], cancelled: bool) -> MultiSymbolResult:
        ok = [r.result for r in symbol_results if r.result is not None]
        trades = sorted(
            (t for res in ok for t in res.trades),
            key=lambda t: (t.exit_time, t.symbol, t.lot_id),
        )
        balances = {res.symbol: res.initial_balance for res in ok}
        curves = {res.symbol: res.equity_curve for res in ok}
        total_capital = sum(balances.values())
        equity_curve = combine_equity_curves(curves, balances)
        failed = [r.symbol for r in symbol_results if not r.ok]
        if failed:
            logger.warning("Symbols failed: %s", ", ".join(failed))
        return MultiSymbolResult(
            symbol_results=symbol_results,
            trades=trades,
            equity_curve=equity_curve,
            metrics=compute_metrics(trades, equity_curve, total_capital),
            cross_symbol=analyze_cross_symbol(curves, balances),
            limits=check_portfolio_limits(
                trades,
                total_capital,
                self.portfolio.max_concurrent_positions,
                self.portfolio.max_total_risk,
            ),
            cancelled=cancelled,
        )
