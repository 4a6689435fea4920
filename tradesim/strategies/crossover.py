"""
Crossover family: a fast/slow pair (EMA fast/slow or MACD line/signal) with an
ATR-normalized gap filter and an RSI momentum filter.

Entry: strict sign change of fast - slow between consecutive bars,
|fast - slow| / ATR >= gap_entry_threshold, RSI on the right side of its threshold.
Exit (one lot): pair reversed, momentum failed, or gap below gap_unwind_threshold.
Pyramid: trend and momentum still agree and the gap keeps widening.
"""

from __future__ import annotations
from typing import Optional

from tradesim.core.types import Direction, Signal, SignalKind
from tradesim.indicators.base import Indicator, IndicatorSnapshot
from tradesim.indicators.momentum import RSI
from tradesim.indicators.trend import EMA, MACD
from tradesim.indicators.volatility import ATR
from tradesim.strategies.base import BaseStrategy, StrategyContext


class CrossoverStrategy(BaseStrategy):

    name = "crossover"

    def build_indicators(self) -> list[Indicator]:
        p = self.params
        indicators: list[Indicator] = [ATR(p.atr_period, name="atr"), RSI(p.rsi_period, name="rsi")]
        if p.crossover_pair == "macd":
            indicators.append(MACD(p.macd_fast, p.macd_slow, p.macd_signal, name="macd"))
        else:
            indicators.append(EMA(p.ema_fast, name="ema_fast"))
            indicators.append(EMA(p.ema_slow, name="ema_slow"))
        return indicators

    @property
    def required_indicators(self) -> tuple[str, ...]:
        if self.params.crossover_pair == "macd":
            return ("atr", "rsi", "macd")
        return ("atr", "rsi", "ema_fast", "ema_slow")

    def _pair(self, snapshot: IndicatorSnapshot) -> tuple[float, float]:
        if self.params.crossover_pair == "macd":
            macd = snapshot["macd"]
            return macd.macd, macd.signal
        return snapshot["ema_fast"], snapshot["ema_slow"]

    def evaluate(self, ctx: StrategyContext) -> list[Signal]:
        if ctx.previous is None or not ctx.previous.is_ready(self.required_indicators):
            return []
        p = self.params
        fast, slow = self._pair(ctx.snapshot)
        prev_fast, prev_slow = self._pair(ctx.previous)
        atr = ctx.snapshot["atr"]
        rsi = ctx.snapshot["rsi"]

        diff = fast - slow
        prev_diff = prev_fast - prev_slow
        gap = abs(diff) / atr if atr > 0 else 0.0
        diag = {
            "fast": fast,
            "slow": slow,
            "atr": atr,
            "rsi": rsi,
            "gap_norm": gap,
        }
        strength = gap * 20.0 + abs(rsi - 50.0)
        signals: list[Signal] = []

        held = ctx.direction
        if held is not None:
            exit_signal = self._exit_signal(ctx, held, diff, rsi, gap, strength, diag)
            if exit_signal is not None:
                signals.append(exit_signal)
            elif self._momentum_ok(held, rsi) and diff * held.sign > 0:
                needed = p.gap_entry_threshold * (1.0 + p.pyramid_gap_step * ctx.n_lots)
                if gap >= needed:
                    signals.append(self._signal(
                        ctx, SignalKind.PYRAMID, held, "gap_widening", strength,
                        {**diag, "gap_needed": needed},
                    ))

        crossed_up = prev_diff < 0 < diff
        crossed_down = prev_diff > 0 > diff
        if gap >= p.gap_entry_threshold:
            if crossed_up and held is not Direction.LONG and self._momentum_ok(Direction.LONG, rsi):
                signals.append(self._signal(ctx, SignalKind.ENTRY, Direction.LONG, "cross_up", strength, diag))
            elif crossed_down and held is not Direction.SHORT and self._momentum_ok(Direction.SHORT, rsi):
                signals.append(self._signal(ctx, SignalKind.ENTRY, Direction.SHORT, "cross_down", strength, diag))
        return signals

    def _momentum_ok(self, direction: Direction, rsi: float) -> bool:
        if direction is Direction.LONG:
            return rsi >= self.params.rsi_long_threshold
        return rsi <= self.params.rsi_short_threshold

    def _exit_signal(
        self,
        ctx: StrategyContext,
        held: Direction,
        diff: float,
        rsi: float,
        gap: float,
        strength: float,
        diag: dict,
    ) -> Optional[Signal]:
        p = self.params
        if diff * held.sign < 0:
            if p.flatten_on_reversal:
                return self._signal(ctx, SignalKind.EMERGENCY_EXIT, held, "reversal", strength, diag)
            return self._signal(ctx, SignalKind.EXIT, held, "reversal", strength, diag)
        if held is Direction.LONG and rsi < p.rsi_exit_long:
            return self._signal(ctx, SignalKind.EXIT, held, "momentum_failed", strength, diag)
        if held is Direction.SHORT and rsi > p.rsi_exit_short:
            return self._signal(ctx, SignalKind.EXIT, held, "momentum_failed", strength, diag)
        if gap < p.gap_unwind_threshold:
            return self._signal(ctx, SignalKind.EXIT, held, "gap_unwind", strength, diag)
        return None
