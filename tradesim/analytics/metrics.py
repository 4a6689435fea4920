"""
Performance metrics: win rate, profit factor, drawdown (value + duration),
Sharpe, Sortino, VaR, Calmar, streaks.

Everything is recomputed from the closed-trade ledger and the per-bar equity
curve, so a MetricsSnapshot can be rebuilt at any point of a run.
Sharpe/Sortino use per-trade % returns and are not annualized unless
periods_per_year is given.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np

from tradesim.core.types import ClosedTrade, EquityPoint


@dataclass(frozen=True)
class DrawdownStats:
    """Largest peak-to-trough decline. Peak resets only on a new high."""
    max_drawdown: float = 0.0         # fraction, 0.1364 = 13.64%
    max_drawdown_amount: float = 0.0
    peak_index: Optional[int] = None
    trough_index: Optional[int] = None
    recovery_index: Optional[int] = None
    peak_time: Optional[datetime] = None
    trough_time: Optional[datetime] = None
    recovery_time: Optional[datetime] = None
    duration_bars: int = 0            # peak to recovery, or to the last bar if never recovered

    @property
    def max_drawdown_pct(self) -> float:
        return self.max_drawdown * 100.0

    @property
    def recovered(self) -> bool:
        return self.recovery_index is not None


@dataclass(frozen=True)
class MetricsSnapshot:
    """Aggregate performance metrics. profit_factor is None when there are wins and no losses."""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    profit_factor: Optional[float] = 0.0
    expectancy: float = 0.0
    total_pnl: float = 0.0
    total_return_pct: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    value_at_risk_95: float = 0.0
    calmar_ratio: float = 0.0
    recovery_factor: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    avg_holding_seconds: float = 0.0
    total_fees: float = 0.0
    final_equity: float = 0.0
    drawdown: DrawdownStats = field(default_factory=DrawdownStats)

    @property
    def max_drawdown_pct(self) -> float:
        return self.drawdown.max_drawdown_pct


def sharpe_ratio(returns: List[float], risk_free_rate: float = 0.0, periods_per_year: float = 1.0) -> float:
    """mean / population std of returns. 0 when std is 0 or there are no returns."""
    if not returns:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    excess = arr - risk_free_rate / periods_per_year
    if excess.std() <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * excess.mean() / excess.std())


def sortino_ratio(returns: List[float], risk_free_rate: float = 0.0, periods_per_year: float = 1.0) -> float:
    """Sortino (downside deviation). Falls back to Sharpe without downside dispersion."""
    if not returns:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    excess = arr - risk_free_rate / periods_per_year
    downside = arr[arr < 0]
    if len(downside) == 0 or downside.std() <= 1e-12:
        return sharpe_ratio(returns, risk_free_rate, periods_per_year)
    return float(np.sqrt(periods_per_year) * excess.mean() / downside.std())


def drawdown_stats(equity: Sequence[float], timestamps: Optional[Sequence[datetime]] = None) -> DrawdownStats:
    if len(equity) == 0:
        return DrawdownStats()
    peak = equity[0]
    peak_idx = 0
    best = 0.0
    best_amount = 0.0
    best_peak = best_trough = None
    for i, value in enumerate(equity):
        if value > peak:
            peak, peak_idx = value, i
            continue
        if peak <= 0:
            continue
        dd = (peak - value) / peak
        if dd > best:
            best, best_amount = dd, peak - value
            best_peak, best_trough = peak_idx, i
    if best_peak is None:
        return DrawdownStats()

    recovery = None
    for j in range(best_trough + 1, len(equity)):
        if equity[j] >= equity[best_peak]:
            recovery = j
            break
    end = recovery if recovery is not None else len(equity) - 1

    def ts(i: Optional[int]) -> Optional[datetime]:
        if timestamps is None or i is None:
            return None
        return timestamps[i]

    return DrawdownStats(
        max_drawdown=best,
        max_drawdown_amount=best_amount,
        peak_index=best_peak,
        trough_index=best_trough,
        recovery_index=recovery,
        peak_time=ts(best_peak),
        trough_time=ts(best_trough),
        recovery_time=ts(recovery),
        duration_bars=end - best_peak,
    )


def max_drawdown(equity: List[float]) -> float:
    """Max drawdown as a fraction (0.15 = 15%)."""
    return drawdown_stats(equity).max_drawdown


def win_rate(pnls: List[float]) -> float:
    """Fraction of trades with positive PnL."""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: List[float]) -> Optional[float]:
    """Gross profit / gross loss. None when there are wins but no losses, 0 without wins."""
    wins = sum(p for p in pnls if p > 0)
    losses = sum(-p for p in pnls if p < 0)
    if losses <= 0:
        return None if wins > 0 else 0.0
    return wins / losses


def expectancy(pnls: List[float]) -> float:
    """Average PnL per trade."""
    if not pnls:
        return 0.0
    return sum(pnls) / len(pnls)


def value_at_risk(returns: List[float], confidence: float = 0.95) -> float:
    """Historical VaR as a positive loss figure in the units of `returns`."""
    if not returns:
        return 0.0
    return max(0.0, -float(np.percentile(np.asarray(returns, dtype=float), (1.0 - confidence) * 100.0)))


def max_streak(pnls: List[float], wins: bool = True) -> int:
    best = run = 0
    for p in pnls:
        hit = p > 0 if wins else p < 0
        run = run + 1 if hit else 0
        best = max(best, run)
    return best


def calmar_ratio(total_return: float, max_dd: float) -> float:
    """Total return over max drawdown (both fractions)."""
    if max_dd <= 0:
        return 0.0
    return total_return / max_dd


def compute_metrics(
    trades: Sequence[ClosedTrade],
    equity_curve: Sequence[EquityPoint],
    initial_balance: float,
    periods_per_year: float = 1.0,
) -> MetricsSnapshot:
    """Full metrics from a trade ledger and equity curve."""
    pnls = [t.pnl for t in trades]
    pct = [t.pnl_pct for t in trades]
    equity = [p.equity for p in equity_curve]
    final_equity = equity[-1] if equity else initial_balance + sum(pnls)
    dd = drawdown_stats(equity, [p.timestamp for p in equity_curve])
    if not trades:
        return MetricsSnapshot(final_equity=final_equity, drawdown=dd)

    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    total_pnl = sum(pnls)
    total_return = (final_equity - initial_balance) / initial_balance if initial_balance else 0.0
    return MetricsSnapshot(
        total_trades=len(trades),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        expectancy=expectancy(pnls),
        total_pnl=total_pnl,
        total_return_pct=total_return * 100.0,
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
        largest_win=max(wins) if wins else 0.0,
        largest_loss=min(losses) if losses else 0.0,
        sharpe_ratio=sharpe_ratio(pct, periods_per_year=periods_per_year),
        sortino_ratio=sortino_ratio(pct, periods_per_year=periods_per_year),
        value_at_risk_95=value_at_risk(pct, 0.95),
        calmar_ratio=calmar_ratio(total_return, dd.max_drawdown),
        recovery_factor=total_pnl / dd.max_drawdown_amount if dd.max_drawdown_amount > 0 else 0.0,
        max_consecutive_wins=max_streak(pnls, wins=True),
        max_consecutive_losses=max_streak(pnls, wins=False),
        avg_holding_seconds=sum(t.holding_seconds for t in trades) / len(trades),
        total_fees=sum(t.fees for t in trades),
        final_equity=final_equity,
        drawdown=dd,
    )
