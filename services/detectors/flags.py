"""Bull and bear flags: a sharp pole followed by a tight counter-trend consolidation."""

from dataclasses import dataclass

import numpy as np

from models.technicals import DetectedPattern, PatternType, SignalDirection
from services.confirmation import (
    accumulate_confidence, price_above_averages, price_below_averages,
    rsi_above, rsi_below, strength_for, volume_relative,
)
from services.detectors.context import PatternContext, trade_pattern


@dataclass(frozen=True)
class FlagConstants:
    lookback: int = 30
    first_index: int = 10
    window_before: int = 20
    window_after: int = 5
    min_window: int = 15
    edge: int = 2
    pole_min_bars: int = 3
    pole_max_bars: int = 6
    min_pole_move: float = 0.05
    min_flag_bars: int = 3
    max_flag_range: float = 0.05
    volume_factor: float = 0.7
    bull_rsi_floor: float = 40
    bear_rsi_ceiling: float = 60
    base_confidence: float = 0.6
    increment: float = 0.1
    strong: float = 0.8
    moderate: float = 0.7
    stop_buffer: float = 0.02


FLAG_CONSTANTS = FlagConstants()


def detect_flags(ctx: PatternContext, constants: FlagConstants = FLAG_CONSTANTS) -> list[DetectedPattern]:
    c = constants
    n = ctx.n
    lookback = min(c.lookback, n - c.window_after)
    results: list[DetectedPattern] = []

    for i in range(max(c.first_index, n - lookback), n - c.window_after):
        start = max(0, i - c.window_before)
        end = min(n, i + c.window_after)
        if end - start < c.min_window:
            continue

        for pole_start, pole_end in _flagpoles(ctx.prices, start, end, c):
            pattern = _flag(ctx, i, pole_start, pole_end, c)
            if pattern is not None:
                results.append(pattern)

    return results


def _flagpoles(prices: np.ndarray, start: int, end: int, c: FlagConstants):
    """Yield (j, k) pairs where price moves at least min_pole_move in 3-5 bars."""
    for j in range(start + c.edge, end - c.edge):
        for k in range(j + c.pole_min_bars, min(j + c.pole_max_bars, end)):
            if abs(prices[k] - prices[j]) / prices[j] >= c.min_pole_move:
                yield j, k


def _flag(ctx, i, pole_start, pole_end, c):
    if i - pole_end < c.min_flag_bars:
        return None

    up = ctx.prices[pole_end] > ctx.prices[pole_start]
    flag = ctx.prices[pole_end:i + 1]
    flag_high = float(flag.max())
    flag_low = float(flag.min())
    if (flag_high - flag_low) / ctx.prices[pole_end] > c.max_flag_range:
        return None

    # consolidation must drift against the pole
    flag_up = flag[-1] > flag[0]
    if flag_up == up:
        return None

    flag_volume = float(ctx.volumes[pole_end:i + 1].mean())
    volume = volume_relative(flag_volume, ctx.volumes[pole_end], c.volume_factor, above=False)
    if up:
        rsi = rsi_above(ctx.rsi, i, c.bull_rsi_floor)
        ma = price_above_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
    else:
        rsi = rsi_below(ctx.rsi, i, c.bear_rsi_ceiling)
        ma = price_below_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
    confidence = accumulate_confidence(c.base_confidence, [volume, rsi, ma], c.increment)

    price = float(ctx.prices[i])
    pole_height = abs(float(ctx.prices[pole_end] - ctx.prices[pole_start]))
    name = "Bull Flag" if up else "Bear Flag"

    return trade_pattern(
        PatternType.BULL_FLAG if up else PatternType.BEAR_FLAG,
        i,
        SignalDirection.BULLISH if up else SignalDirection.BEARISH,
        confidence,
        strength_for(confidence, moderate=c.moderate, strong=c.strong),
        entry=price,
        stop=flag_low * (1 - c.stop_buffer) if up else flag_high * (1 + c.stop_buffer),
        target=price + pole_height if up else price - pole_height,
        description=f"{name} after a {pole_height:.2f} move",
        volume=volume, rsi=rsi, ma=ma,
        key_levels={
            "flagpole_start": ctx.prices[pole_start],
            "flagpole_end": ctx.prices[pole_end],
            "flag_high": flag_high,
            "flag_low": flag_low,
        },
        metadata={"name": name, "start_index": pole_start, "end_index": i, "pole_end_index": pole_end},
    )
