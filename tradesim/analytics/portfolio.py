"""
Cross-symbol analytics for multi-symbol runs: aligned returns, correlation,
portfolio volatility, diversification ratio, concentration, and the advisory
portfolio-limit replay over the merged ledger.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from tradesim.core.types import ClosedTrade, EquityPoint

logger = logging.getLogger("tradesim.analytics")


@dataclass(frozen=True)
class CrossSymbolAnalysis:
    symbols: tuple = ()
    correlation: Dict[str, Dict[str, float]] = field(default_factory=dict)
    volatilities: Dict[str, float] = field(default_factory=dict)
    weights: Dict[str, float] = field(default_factory=dict)
    portfolio_volatility: float = 0.0
    diversification_ratio: float = 1.0
    portfolio_return: float = 0.0
    risk_adjusted_return: float = 0.0
    concentration_risk: float = 0.0
    max_correlation: Optional[float] = None
    min_correlation: Optional[float] = None


@dataclass(frozen=True)
class LimitBreach:
    timestamp: datetime
    symbol: str
    limit: str        # "max_concurrent_positions" | "max_total_risk"
    value: float
    threshold: float


@dataclass(frozen=True)
class PortfolioLimitReport:
    """Advisory: what the merged ledger would have looked like against the global caps."""
    peak_concurrent_positions: int = 0
    peak_total_risk: float = 0.0
    max_concurrent_positions: Optional[int] = None
    max_total_risk: Optional[float] = None
    breaches: List[LimitBreach] = field(default_factory=list)

    @property
    def within_limits(self) -> bool:
        return not self.breaches


def _frame(curves: Mapping[str, Sequence[EquityPoint]], attr: str) -> pd.DataFrame:
    series = {}
    for symbol, points in curves.items():
        if not points:
            continue
        index = pd.DatetimeIndex([p.timestamp for p in points])
        series[symbol] = pd.Series([getattr(p, attr) for p in points], index=index, dtype=float)
    if not series:
        return pd.DataFrame()
    return pd.DataFrame(series).sort_index().ffill()


def combine_equity_curves(
    curves: Mapping[str, Sequence[EquityPoint]],
    initial_balances: Mapping[str, float],
) -> List[EquityPoint]:
    """Portfolio curve on the union calendar. A symbol counts at its initial balance before its first bar."""
    equity = _frame(curves, "equity")
    if equity.empty:
        return []
    balance = _frame(curves, "balance")
    for symbol in equity.columns:
        start = initial_balances.get(symbol, 0.0)
        equity[symbol] = equity[symbol].fillna(start)
        balance[symbol] = balance[symbol].fillna(start)
    total = equity.sum(axis=1)
    total_balance = balance.sum(axis=1)
    peak = total.cummax()
    drawdown = ((peak - total) / peak.where(peak > 0)).fillna(0.0)
    return [
        EquityPoint(timestamp=ts.to_pydatetime(), balance=float(b), equity=float(e), drawdown=float(d))
        for ts, b, e, d in zip(total.index, total_balance, total, drawdown)
    ]


def align_returns(curves: Mapping[str, Sequence[EquityPoint]]) -> pd.DataFrame:
    """Per-bar returns on the union calendar, forward-filled; NaN before a symbol's first bar."""
    equity = _frame(curves, "equity")
    if equity.empty:
        return equity
    return equity.pct_change(fill_method=None).iloc[1:]


def correlation_matrix(returns: pd.DataFrame) -> pd.DataFrame:
    """Pearson correlation; undefined pairs (flat or non-overlapping series) count as 0."""
    symbols = list(returns.columns)
    if not symbols:
        return pd.DataFrame()
    values = returns.corr().reindex(index=symbols, columns=symbols).to_numpy(dtype=float, copy=True)
    values = np.nan_to_num(values, nan=0.0)
    np.fill_diagonal(values, 1.0)
    return pd.DataFrame(values, index=symbols, columns=symbols)


def portfolio_volatility(vols: np.ndarray, corr: np.ndarray, weights: np.ndarray) -> float:
    """sqrt(w' S w) with S = diag(vol) C diag(vol)."""
    cov = np.outer(vols, vols) * corr
    var = float(weights @ cov @ weights)
    return float(np.sqrt(var)) if var > 0 else 0.0


def diversification_ratio(vols: np.ndarray, weights: np.ndarray, port_vol: float) -> float:
    """Weighted average volatility over portfolio volatility. 1.0 when volatility is zero."""
    if port_vol <= 0:
        return 1.0
    return float(weights @ vols) / port_vol


def analyze_cross_symbol(
    curves: Mapping[str, Sequence[EquityPoint]],
    initial_balances: Mapping[str, float],
) -> CrossSymbolAnalysis:
    returns = align_returns(curves)
    symbols = [s for s in curves if s in returns.columns]
    if not symbols:
        return CrossSymbolAnalysis()
    returns = returns[symbols]
    corr = correlation_matrix(returns)
    vols = returns.std(ddof=0).fillna(0.0).to_numpy(dtype=float)
    capital = np.array([initial_balances.get(s, 0.0) for s in symbols], dtype=float)
    weights = capital / capital.sum() if capital.sum() > 0 else np.full(len(symbols), 1.0 / len(symbols))

    corr_values = corr.to_numpy()
    port_vol = portfolio_volatility(vols, corr_values, weights)
    means = returns.mean().fillna(0.0).to_numpy(dtype=float)
    port_ret = float(weights @ means)

    off_diag = corr_values[~np.eye(len(symbols), dtype=bool)]
    return CrossSymbolAnalysis(
        symbols=tuple(symbols),
        correlation={a: {b: float(corr.loc[a, b]) for b in symbols} for a in symbols},
        volatilities={s: float(v) for s, v in zip(symbols, vols)},
        weights={s: float(w) for s, w in zip(symbols, weights)},
        portfolio_volatility=port_vol,
        diversification_ratio=diversification_ratio(vols, weights, port_vol),
        portfolio_return=port_ret,
        risk_adjusted_return=port_ret / port_vol if port_vol > 0 else 0.0,
        concentration_risk=float(np.sum(weights ** 2)),
        max_correlation=float(off_diag.max()) if off_diag.size else None,
        min_correlation=float(off_diag.min()) if off_diag.size else None,
    )


def check_portfolio_limits(
    trades: Sequence[ClosedTrade],
    total_capital: float,
    max_concurrent_positions: Optional[int] = None,
    max_total_risk: Optional[float] = None,
) -> PortfolioLimitReport:
    """
    Replay lot openings/closings from the merged ledger. At equal timestamps
    closings are applied before openings, except a lot opened and closed on
    the same bar, which closes after it opens.
    """
    events = []
    for t in trades:
        notional = t.entry_price * t.quantity
        events.append((t.entry_time, 1, t.symbol, notional))
        events.append((t.exit_time, 2 if t.exit_time == t.entry_time else 0, t.symbol, notional))
    events.sort(key=lambda e: (e[0], e[1], e[2]))

    open_lots: dict[str, int] = {}
    open_notional = 0.0
    peak_positions = 0
    peak_risk = 0.0
    breaches: List[LimitBreach] = []
    for ts, phase, symbol, notional in events:
        if phase != 1:
            open_lots[symbol] -= 1
            if open_lots[symbol] == 0:
                del open_lots[symbol]
            open_notional -= notional
            continue
        open_lots[symbol] = open_lots.get(symbol, 0) + 1
        open_notional += notional
        positions = len(open_lots)
        risk = open_notional / total_capital if total_capital > 0 else 0.0
        peak_positions = max(peak_positions, positions)
        peak_risk = max(peak_risk, risk)
        if max_concurrent_positions is not None and positions > max_concurrent_positions:
            breaches.append(LimitBreach(ts, symbol, "max_concurrent_positions", positions, max_concurrent_positions))
        if max_total_risk is not None and risk > max_total_risk:
            breaches.append(LimitBreach(ts, symbol, "max_total_risk", risk, max_total_risk))

    if breaches:
        logger.warning("Portfolio limits exceeded %d time(s) (advisory)", len(breaches))
    return PortfolioLimitReport(
        peak_concurrent_positions=peak_positions,
        peak_total_risk=peak_risk,
        max_concurrent_positions=max_concurrent_positions,
        max_total_risk=max_total_risk,
        breaches=breaches,
    )
