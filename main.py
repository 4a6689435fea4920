#!/usr/bin/env python3
"""
Simulation CLI: backtest | portfolio
Usage:
  python main.py backtest [--config config.yaml] [--symbol BTCUSDT] [--data-dir data] [--start 2024-01-01] [--end 2024-03-31]
  python main.py portfolio [--config config.yaml] [--data-dir data]
"""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tradesim.analytics.metrics import MetricsSnapshot
from tradesim.backtesting.engine import BacktestEngine
from tradesim.backtesting.orchestrator import MultiSymbolOrchestrator
from tradesim.core.config import load_config
from tradesim.core.errors import ConfigError, DataError
from tradesim.core.logger import setup_logging
from tradesim.core.types import SignalStatus
from tradesim.data.provider import CsvDataProvider, load_bars

logger = logging.getLogger("tradesim")


def print_metrics(title: str, m: MetricsSnapshot) -> None:
    pf = "n/a (no losses)" if m.profit_factor is None else f"{m.profit_factor:.2f}"
    dd = m.drawdown
    print(f"\n--- {title} ---")
    print(f"Total trades: {m.total_trades} (wins: {m.winning_trades}, losses: {m.losing_trades})")
    print(f"Total return: {m.total_return_pct:.2f}%  (pnl {m.total_pnl:.2f}, fees {m.total_fees:.2f})")
    print(f"Final equity: {m.final_equity:.2f}")
    print(f"Sharpe ratio: {m.sharpe_ratio:.2f}")
    print(f"Sortino ratio: {m.sortino_ratio:.2f}")
    print(f"Max drawdown: {dd.max_drawdown_pct:.2f}% over {dd.duration_bars} bars"
          f" (peak {dd.peak_time}, trough {dd.trough_time}, recovered {dd.recovery_time})")
    print(f"Win rate: {m.win_rate*100:.1f}%")
    print(f"Profit factor: {pf}")
    print(f"Expectancy: {m.expectancy:.2f}/trade")
    print(f"Max consecutive wins/losses: {m.max_consecutive_wins}/{m.max_consecutive_losses}")


def run_backtest(config_path: Optional[Path], symbol: Optional[str], data_dir: Optional[Path],
                 limit: Optional[int], start: Optional[str] = None, end: Optional[str] = None) -> int:
    """Single-symbol run from <data_dir>/<SYMBOL>.csv, optionally within [start, end]."""
    config = load_config(config_path, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    sim = config.simulation
    overrides = {}
    if symbol:
        overrides["symbol"] = symbol.upper()
    if start:
        overrides["start_date"] = start
    if end:
        overrides["end_date"] = end
    if overrides:
        sim = sim.with_overrides(overrides).validate()
    provider = CsvDataProvider(data_dir or config.data_dir)
    engine = BacktestEngine(sim)
    bars = load_bars(provider, sim.symbol, limit, start=sim.start_date, end=sim.end_date)
    result = engine.run(bars)
    if result.metrics:
        print_metrics(f"Backtest {sim.symbol}", result.metrics)
    vetoed = sum(1 for s in result.signals if s.status is SignalStatus.VETOED)
    rejected = sum(1 for s in result.signals if s.status is SignalStatus.REJECTED)
    print(f"Signals: {len(result.signals)} (vetoed {vetoed}, rejected {rejected})")
    return 0


def run_portfolio(config_path: Optional[Path], data_dir: Optional[Path]) -> int:
    """Multi-symbol run over the symbols list in config."""
    config = load_config(config_path, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    provider = CsvDataProvider(data_dir or config.data_dir)
    result = MultiSymbolOrchestrator(config.portfolio, provider).run()
    for sr in result.symbol_results:
        if sr.ok:
            print_metrics(f"{sr.symbol}", sr.result.metrics)
        else:
            print(f"\n--- {sr.symbol} --- FAILED: {sr.error.message}")
    if result.metrics:
        print_metrics("Portfolio", result.metrics)
    cs = result.cross_symbol
    if cs and cs.symbols:
        print(f"Portfolio volatility: {cs.portfolio_volatility:.6f}")
        print(f"Diversification ratio: {cs.diversification_ratio:.3f}")
        print(f"Correlation range: {cs.min_correlation} .. {cs.max_correlation}")
    if result.limits:
        lim = result.limits
        print(f"Peak concurrent positions: {lim.peak_concurrent_positions}, "
              f"peak total risk: {lim.peak_total_risk:.3f}, limit breaches: {len(lim.breaches)}")
    return 1 if result.failed_symbols and len(result.failed_symbols) == len(result.symbol_results) else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Strategy simulation CLI")
    parser.add_argument("mode", choices=["backtest", "portfolio"], help="Single symbol or multi-symbol run")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--symbol", default=None, help="Override symbol (backtest mode)")
    parser.add_argument("--data-dir", type=Path, default=None, help="Directory with <SYMBOL>.csv files")
    parser.add_argument("--limit", type=int, default=None, help="Only use the last N bars (backtest mode)")
    parser.add_argument("--start", default=None, help="First bar time, ISO date (backtest mode)")
    parser.add_argument("--end", default=None, help="Last bar time, ISO date (backtest mode)")
    args = parser.parse_args()
    try:
        if args.mode == "backtest":
            return run_backtest(args.config, args.symbol, args.data_dir, args.limit, args.start, args.end)
        return run_portfolio(args.config, args.data_dir)
    except ConfigError as e:
        logger.error("Configuration error: %s", e.to_dict())
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 1
    except DataError as e:
        logger.error("Data error: %s", e.to_dict())
        print(f"Data error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    exit(main())
