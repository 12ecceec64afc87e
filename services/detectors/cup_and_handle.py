"""Cup and handle: a rounded base between two similar rims followed by a shallow pullback."""

from dataclasses import dataclass

from models.technicals import DetectedPattern, PatternType, SignalDirection
from services.confirmation import (
    accumulate_confidence, price_above_averages, rsi_within, strength_for, volume_relative,
)
from services.detectors.context import PatternContext, trade_pattern
from services.swing_detector import find_swings


@dataclass(frozen=True)
class CupAndHandleConstants:
    lookback: int = 10
    first_index: int = 5
    window_before: int = 40
    window_after: int = 5
    min_window: int = 30
    swing_window: int = 3
    min_cup_depth: float = 0.10
    max_cup_depth: float = 0.40
    rim_tolerance: float = 0.05
    min_handle_depth: float = 0.05
    max_handle_depth: float = 0.15
    breakout_volume_factor: float = 1.2
    rsi_low: float = 40
    rsi_high: float = 70
    base_confidence: float = 0.6
    increment: float = 0.1
    strong: float = 0.8
    moderate: float = 0.7
    stop_buffer: float = 0.05
    target_ratio: float = 0.618


CUP_AND_HANDLE_CONSTANTS = CupAndHandleConstants()


def detect_cup_and_handle(
    ctx: PatternContext, constants: CupAndHandleConstants = CUP_AND_HANDLE_CONSTANTS,
) -> list[DetectedPattern]:
    c = constants
    n = ctx.n
    lookback = min(c.lookback, n - c.window_after)
    results: list[DetectedPattern] = []

    for i in range(max(c.first_index, n - lookback), n - c.window_after):
        start = max(0, i - c.window_before)
        segment = ctx.prices[start:i + c.window_after]
        if len(segment) < c.min_window:
            continue

        swing_highs, swing_lows = find_swings(segment, c.swing_window)
        highs = [(start + p.index, p.price) for p in swing_highs]
        lows = [(start + p.index, p.price) for p in swing_lows]
        if len(highs) < 2 or not lows:
            continue

        pattern = _cup_and_handle(ctx, i, highs, lows, c)
        if pattern is not None:
            results.append(pattern)

    return results


def _cup_and_handle(ctx, i, highs, lows, c):
    for (start_idx, rim_start), (end_idx, rim_end) in zip(highs, highs[1:]):
        if end_idx >= i:
            continue
        inside = [low for low in lows if start_idx < low[0] < end_idx]
        if not inside:
            continue
        bottom_idx, bottom = min(inside, key=lambda low: low[1])

        rim = max(rim_start, rim_end)
        depth = (rim - bottom) / rim
        if depth < c.min_cup_depth or depth > c.max_cup_depth:
            continue
        if abs(rim_start - rim_end) / rim > c.rim_tolerance:
            continue

        handle_low = float(ctx.prices[end_idx:i + 1].min())
        handle_depth = (rim_end - handle_low) / rim_end
        if handle_depth < c.min_handle_depth or handle_depth > c.max_handle_depth:
            continue

        volume = volume_relative(ctx.volumes[bottom_idx], ctx.volumes[start_idx], above=False) and volume_relative(
            ctx.volumes[i], ctx.volumes[end_idx], c.breakout_volume_factor
        )
        rsi = rsi_within(ctx.rsi, i, c.rsi_low, c.rsi_high)
        ma = price_above_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
        confidence = accumulate_confidence(c.base_confidence, [volume, rsi, ma], c.increment)

        return trade_pattern(
            PatternType.CUP_AND_HANDLE, i, SignalDirection.BULLISH, confidence,
            strength_for(confidence, moderate=c.moderate, strong=c.strong),
            entry=ctx.prices[i],
            stop=bottom * (1 - c.stop_buffer),
            target=rim_start + (rim_start - bottom) * c.target_ratio,
            description=f"Cup and handle with rims at {rim_start:.2f} and {rim_end:.2f}, base {bottom:.2f}",
            volume=volume, rsi=rsi, ma=ma,
            key_levels={"cup_start": rim_start, "cup_bottom": bottom, "cup_end": rim_end, "handle_low": handle_low},
            metadata={
                "start_index": start_idx,
                "end_index": end_idx,
                "cup_depth": round(depth, 4),
                "handle_depth": round(handle_depth, 4),
            },
        )
    return None
