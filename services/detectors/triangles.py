"""Ascending, descending and symmetrical triangles over short rolling windows."""

from dataclasses import dataclass

from models.technicals import DetectedPattern, PatternType, SignalDirection
from services.confirmation import (
    accumulate_confidence, price_above_averages, price_below_averages,
    price_near_average, rsi_within, strength_for, volume_surge,
)
from services.detectors.context import PatternContext, trade_pattern
from services.swing_detector import find_swings


@dataclass(frozen=True)
class TriangleConstants:
    lookback: int = 20
    max_window: int = 15
    min_window: int = 8
    swing_window: int = 1
    flat_high_tolerance: float = 0.015
    flat_low_tolerance: float = 0.02
    min_step: float = 0.01
    min_range: float = 0.05
    converge_slope: float = 0.001
    volume_factor: float = 1.2
    symmetrical_volume_factor: float = 1.1
    volume_lookback: int = 10
    rsi_low: float = 30
    rsi_high: float = 70
    symmetrical_rsi_low: float = 40
    symmetrical_rsi_high: float = 60
    ma_tolerance: float = 0.05
    base_confidence: float = 0.6
    symmetrical_base_confidence: float = 0.5
    increment: float = 0.1
    strong: float = 0.8
    moderate: float = 0.7
    stop_buffer: float = 0.02
    target_ratio: float = 0.618
    symmetrical_target_ratio: float = 0.5


TRIANGLE_CONSTANTS = TriangleConstants()


def detect_triangles(ctx: PatternContext, constants: TriangleConstants = TRIANGLE_CONSTANTS) -> list[DetectedPattern]:
    c = constants
    n = ctx.n
    lookback = min(c.lookback, n - 3)
    results: list[DetectedPattern] = []

    for i in range(max(3, n - lookback), n - 2):
        start = i - min(c.max_window, i)
        segment = ctx.prices[start:i + 2]
        if len(segment) < c.min_window:
            continue

        highs, lows = find_swings(segment, c.swing_window)
        if len(highs) < 2 or len(lows) < 2:
            continue
        h1, h2 = highs[-2], highs[-1]
        l1, l2 = lows[-2], lows[-1]

        for detect in (_ascending, _descending, _symmetrical):
            pattern = detect(ctx, i, start, h1, h2, l1, l2, c)
            if pattern is not None:
                results.append(pattern)

    return results


def _ascending(ctx, i, start, h1, h2, l1, l2, c):
    resistance = (h1.price + h2.price) / 2
    if abs(h1.price - h2.price) > resistance * c.flat_high_tolerance:
        return None
    if l2.price <= l1.price * (1 + c.min_step):
        return None
    if resistance - l1.price < resistance * c.min_range:
        return None

    support = l1.price
    price = ctx.prices[i]
    volume = volume_surge(ctx.volumes, i, c.volume_factor, c.volume_lookback)
    rsi = rsi_within(ctx.rsi, i, c.rsi_low, c.rsi_high)
    ma = price_above_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
    confidence = accumulate_confidence(c.base_confidence, [volume, rsi, ma], c.increment)

    return trade_pattern(
        PatternType.ASCENDING_TRIANGLE, i, SignalDirection.BULLISH, confidence,
        strength_for(confidence, moderate=c.moderate, strong=c.strong),
        entry=price,
        stop=support * (1 - c.stop_buffer),
        target=resistance + (resistance - support) * c.target_ratio,
        description=f"Ascending triangle with flat resistance at {resistance:.2f} and rising support",
        volume=volume, rsi=rsi, ma=ma,
        key_levels={"resistance": resistance, "support": support},
        metadata={"start_index": start + h1.index, "breakout_direction": "up"},
    )


def _descending(ctx, i, start, h1, h2, l1, l2, c):
    support = (l1.price + l2.price) / 2
    if abs(l1.price - l2.price) > support * c.flat_low_tolerance:
        return None
    if h2.price >= h1.price * (1 - c.min_step):
        return None
    resistance = h1.price
    if resistance - support < resistance * c.min_range:
        return None

    price = ctx.prices[i]
    volume = volume_surge(ctx.volumes, i, c.volume_factor, c.volume_lookback)
    rsi = rsi_within(ctx.rsi, i, c.rsi_low, c.rsi_high)
    ma = price_below_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
    confidence = accumulate_confidence(c.base_confidence, [volume, rsi, ma], c.increment)

    return trade_pattern(
        PatternType.DESCENDING_TRIANGLE, i, SignalDirection.BEARISH, confidence,
        strength_for(confidence, moderate=c.moderate, strong=c.strong),
        entry=price,
        stop=resistance * (1 + c.stop_buffer),
        target=support - (resistance - support) * c.target_ratio,
        description=f"Descending triangle with flat support at {support:.2f} and falling resistance",
        volume=volume, rsi=rsi, ma=ma,
        key_levels={"resistance": resistance, "support": support},
        metadata={"start_index": start + l1.index, "breakout_direction": "down"},
    )


def _symmetrical(ctx, i, start, h1, h2, l1, l2, c):
    # slopes per bar, relative to the first touch
    high_slope = (h2.price - h1.price) / (h2.index - h1.index) / h1.price
    low_slope = (l2.price - l1.price) / (l2.index - l1.index) / l1.price
    if high_slope >= -c.converge_slope or low_slope <= c.converge_slope:
        return None

    resistance = h1.price
    support = l1.price
    price = ctx.prices[i]
    volume = volume_surge(ctx.volumes, i, c.symmetrical_volume_factor, c.volume_lookback)
    rsi = rsi_within(ctx.rsi, i, c.symmetrical_rsi_low, c.symmetrical_rsi_high)
    ma = price_near_average(ctx.prices, i, ctx.sma20, c.ma_tolerance)
    confidence = accumulate_confidence(c.symmetrical_base_confidence, [volume, rsi, ma], c.increment)

    return trade_pattern(
        PatternType.SYMMETRICAL_TRIANGLE, i, SignalDirection.NEUTRAL, confidence,
        strength_for(confidence, moderate=c.moderate),
        entry=price,
        stop=support * (1 - c.stop_buffer),
        target=resistance + (resistance - support) * c.symmetrical_target_ratio,
        description="Symmetrical triangle with converging trendlines",
        volume=volume, rsi=rsi, ma=ma,
        key_levels={"resistance": resistance, "support": support},
        metadata={"start_index": start + min(h1.index, l1.index)},
    )
