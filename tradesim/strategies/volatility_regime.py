"""
Volatility-regime family: Supertrend gives the trend, ATR expansion/decline
against the tracked ATR gates entries, pyramids and exits.

Tracked ATR is the ATR captured when the newest lot opened. While flat the
previous bar's ATR is the baseline.
"""

from __future__ import annotations
from typing import Optional

from tradesim.core.types import Direction, Signal, SignalKind
from tradesim.indicators.base import Indicator
from tradesim.indicators.momentum import RSI
from tradesim.indicators.volatility import ATR, Supertrend
from tradesim.strategies.base import BaseStrategy, StrategyContext


class VolatilityRegimeStrategy(BaseStrategy):

    name = "volatility_regime"

    def build_indicators(self) -> list[Indicator]:
        p = self.params
        return [
            ATR(p.atr_period, name="atr"),
            RSI(p.rsi_period, name="rsi"),
            Supertrend(p.supertrend_period, p.supertrend_multiplier, name="supertrend"),
        ]

    @property
    def required_indicators(self) -> tuple[str, ...]:
        return ("atr", "rsi", "supertrend")

    def is_expanding(self, atr: float, baseline: Optional[float]) -> bool:
        if not baseline or baseline <= 0:
            return False
        return atr >= baseline * (1.0 + self.params.atr_expansion_threshold)

    def is_declining(self, atr: float, baseline: Optional[float]) -> bool:
        if not baseline or baseline <= 0:
            return False
        return atr <= baseline * (1.0 - self.params.atr_decline_threshold)

    def evaluate(self, ctx: StrategyContext) -> list[Signal]:
        if ctx.previous is None or not ctx.previous.is_ready(self.required_indicators):
            return []
        p = self.params
        atr = ctx.snapshot["atr"]
        rsi = ctx.snapshot["rsi"]
        st = ctx.snapshot["supertrend"]
        prev_atr = ctx.previous["atr"]
        held = ctx.direction
        baseline = ctx.tracked_atr if held is not None and ctx.tracked_atr else prev_atr

        diag = {
            "atr": atr,
            "tracked_atr": baseline,
            "rsi": rsi,
            "supertrend": st.value,
            "trend": st.direction,
        }
        change = abs(atr / baseline - 1.0) if baseline else 0.0
        strength = change * 200.0 + abs(rsi - 50.0)
        signals: list[Signal] = []

        if held is not None:
            rsi_exit = (
                (held is Direction.LONG and rsi <= p.rsi_exit_long)
                or (held is Direction.SHORT and rsi >= p.rsi_exit_short)
            )
            if st.direction != held.sign:
                signals.append(self._signal(ctx, SignalKind.EMERGENCY_EXIT, held, "trend_flip", strength, diag))
            elif rsi_exit:
                signals.append(self._signal(ctx, SignalKind.EMERGENCY_EXIT, held, "rsi_extreme", strength, diag))
            elif self.is_declining(atr, baseline):
                signals.append(self._signal(ctx, SignalKind.EXIT, held, "atr_decline", strength, diag))
            elif self.is_expanding(atr, baseline) and self._momentum_ok(held, rsi):
                signals.append(self._signal(ctx, SignalKind.PYRAMID, held, "atr_expansion", strength, diag))

        if st.flipped:
            direction = Direction.LONG if st.direction > 0 else Direction.SHORT
            expanding = self.is_expanding(atr, prev_atr)
            if (
                direction is not held
                and self._momentum_ok(direction, rsi)
                and (expanding or not p.atr_required_for_entry)
            ):
                reason = "trend_flip_up" if direction is Direction.LONG else "trend_flip_down"
                signals.append(self._signal(
                    ctx, SignalKind.ENTRY, direction, reason, strength,
                    {**diag, "atr_expanding": expanding},
                ))
        return signals

    def _momentum_ok(self, direction: Direction, rsi: float) -> bool:
        if direction is Direction.LONG:
            return rsi >= self.params.rsi_long_threshold
        return rsi <= self.params.rsi_short_threshold
