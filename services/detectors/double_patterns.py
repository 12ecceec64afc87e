"""Double top and double bottom detection."""

from dataclasses import dataclass

from models.technicals import DetectedPattern, PatternType, SignalDirection
from services.confirmation import (
    ConfirmationKind, ConfirmationSignal, accumulate_confidence, price_above_averages,
    price_below_averages, strength_for, volume_relative,
)
from services.detectors.context import PatternContext, trade_pattern
from services.swing_detector import find_swings


@dataclass(frozen=True)
class DoublePatternConstants:
    lookback: int = 25
    first_index: int = 15
    step: int = 3
    window_before: int = 25
    window_after: int = 5
    min_window: int = 15
    swing_window: int = 2
    top_tolerance: float = 0.02
    bottom_tolerance: float = 0.03
    top_min_separation: int = 7
    bottom_min_separation: int = 5
    min_valley_depth: float = 0.03
    top_volume_factor: float = 0.8
    bottom_volume_factor: float = 1.2
    rsi_overbought: float = 70
    rsi_oversold: float = 30
    base_confidence: float = 0.6
    increment: float = 0.1
    strong: float = 0.8
    moderate: float = 0.7
    stop_buffer: float = 0.02


DOUBLE_PATTERN_CONSTANTS = DoublePatternConstants()


def detect_double_patterns(
    ctx: PatternContext, constants: DoublePatternConstants = DOUBLE_PATTERN_CONSTANTS,
) -> list[DetectedPattern]:
    c = constants
    n = ctx.n
    lookback = min(c.lookback, n - 10)
    results: list[DetectedPattern] = []

    for i in range(max(c.first_index, n - lookback), n - c.window_after, c.step):
        start = max(0, i - c.window_before)
        segment = ctx.prices[start:i + c.window_after]
        if len(segment) < c.min_window:
            continue

        swing_highs, swing_lows = find_swings(segment, c.swing_window)
        highs = [(start + p.index, p.price) for p in swing_highs]
        lows = [(start + p.index, p.price) for p in swing_lows]

        top = _double_top(ctx, i, highs, c) if len(highs) >= 2 else None
        bottom = _double_bottom(ctx, i, lows, c) if len(lows) >= 2 else None

        # one pattern per window
        if top is not None and bottom is not None:
            results.append(top if top.confidence >= bottom.confidence else bottom)
        elif top is not None:
            results.append(top)
        elif bottom is not None:
            results.append(bottom)

    return results


def _both_rsi(rsi, first: int, second: int, test) -> ConfirmationSignal:
    ok = test(rsi[first]) and test(rsi[second])
    return ConfirmationSignal(ConfirmationKind.RSI, bool(ok), float(rsi[second]))


def _double_top(ctx, i, highs, c):
    for (idx1, peak1), (idx2, peak2) in zip(highs, highs[1:]):
        if abs(peak1 - peak2) / max(peak1, peak2) > c.top_tolerance:
            continue
        if idx2 - idx1 < c.top_min_separation:
            continue

        valley = float(ctx.prices[idx1:idx2 + 1].min())
        peak = max(peak1, peak2)
        if (peak - valley) / peak < c.min_valley_depth:
            continue

        volume = volume_relative(ctx.volumes[idx2], ctx.volumes[idx1], c.top_volume_factor, above=False)
        rsi = _both_rsi(ctx.rsi, idx1, idx2, lambda r: r > c.rsi_overbought)
        ma = price_below_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
        confidence = accumulate_confidence(c.base_confidence, [volume, rsi, ma], c.increment)

        return trade_pattern(
            PatternType.DOUBLE_TOP, i, SignalDirection.BEARISH, confidence,
            strength_for(confidence, moderate=c.moderate, strong=c.strong),
            entry=ctx.prices[i],
            stop=peak * (1 + c.stop_buffer),
            target=valley - (peak - valley),
            description=f"Double top near {peak:.2f} with valley support at {valley:.2f}",
            volume=volume, rsi=rsi, ma=ma,
            key_levels={"first_peak": peak1, "second_peak": peak2, "support": valley},
            metadata={"start_index": idx1, "end_index": idx2},
        )
    return None


def _double_bottom(ctx, i, lows, c):
    for (idx1, low1), (idx2, low2) in zip(lows, lows[1:]):
        if abs(low1 - low2) / max(low1, low2) > c.bottom_tolerance:
            continue
        if idx2 - idx1 < c.bottom_min_separation:
            continue

        resistance = float(ctx.prices[idx1:idx2 + 1].max())
        trough = min(low1, low2)

        volume = volume_relative(ctx.volumes[idx2], ctx.volumes[idx1], c.bottom_volume_factor)
        rsi = _both_rsi(ctx.rsi, idx1, idx2, lambda r: r < c.rsi_oversold)
        ma = price_above_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
        confidence = accumulate_confidence(c.base_confidence, [volume, rsi, ma], c.increment)

        return trade_pattern(
            PatternType.DOUBLE_BOTTOM, i, SignalDirection.BULLISH, confidence,
            strength_for(confidence, moderate=c.moderate, strong=c.strong),
            entry=ctx.prices[i],
            stop=trough * (1 - c.stop_buffer),
            target=resistance + (resistance - trough),
            description=f"Double bottom near {trough:.2f} with resistance at {resistance:.2f}",
            volume=volume, rsi=rsi, ma=ma,
            key_levels={"first_bottom": low1, "second_bottom": low2, "resistance": resistance},
            metadata={"start_index": idx1, "end_index": idx2},
        )
    return None
