"""Rising support and falling resistance trendlines with at least three touches."""

from dataclasses import dataclass

from models.technicals import DetectedPattern, PatternType, SignalDirection
from services.confirmation import (
    accumulate_confidence, price_above_averages, price_below_averages,
    rsi_within, strength_for, volume_surge,
)
from services.detectors.context import PatternContext, trade_pattern
from services.swing_detector import find_swings


@dataclass(frozen=True)
class TrendlineConstants:
    lookback: int = 40
    first_index: int = 15
    step: int = 5
    max_window: int = 30
    window_after: int = 5
    min_window: int = 15
    swing_window: int = 3
    min_swings: int = 3
    min_touches: int = 3
    touch_tolerance: float = 0.02
    volume_factor: float = 1.1
    volume_lookback: int = 10
    rsi_low: float = 25
    rsi_high: float = 75
    base_confidence: float = 0.5
    touch_increment: float = 0.1
    increment: float = 0.1
    steep_slope: float = 0.01
    steep_increment: float = 0.1
    strong: float = 0.8
    moderate: float = 0.7
    stop_buffer: float = 0.02
    target_extension: float = 0.05


TRENDLINE_CONSTANTS = TrendlineConstants()


def detect_trendlines(ctx: PatternContext, constants: TrendlineConstants = TRENDLINE_CONSTANTS) -> list[DetectedPattern]:
    c = constants
    n = ctx.n
    lookback = min(c.lookback, n - 10)
    results: list[DetectedPattern] = []

    for i in range(max(c.first_index, n - lookback), n - c.window_after, c.step):
        start = i - min(c.max_window, i)
        segment = ctx.prices[start:i + c.window_after]
        if len(segment) < c.min_window:
            continue

        swing_highs, swing_lows = find_swings(segment, c.swing_window)
        if len(swing_highs) < c.min_swings or len(swing_lows) < c.min_swings:
            continue
        highs = [(start + p.index, p.price) for p in swing_highs]
        lows = [(start + p.index, p.price) for p in swing_lows]

        rising = _rising_trendline(ctx, i, highs, lows, c)
        if rising is not None:
            results.append(rising)
        falling = _falling_trendline(ctx, i, highs, lows, c)
        if falling is not None:
            results.append(falling)

    return results


def _touches(points, k: int, slope: float, c: TrendlineConstants) -> list[tuple[int, float]]:
    """Points from k onward that sit on the line through points[k] and points[k+1]."""
    x0, y0 = points[k]
    touches = [points[k], points[k + 1]]
    for idx, price in points[k + 2:]:
        expected = y0 + slope * (idx - x0)
        if abs(price - expected) <= expected * c.touch_tolerance:
            touches.append((idx, price))
    return touches


def _confidence(touches, signals, steep: bool, c: TrendlineConstants) -> float:
    base = c.base_confidence + (len(touches) - c.min_touches) * c.touch_increment
    if steep:
        base += c.steep_increment
    return accumulate_confidence(base, signals, c.increment)


def _rising_trendline(ctx, i, highs, lows, c):
    for k in range(len(lows) - 2):
        (x0, y0), (x1, y1) = lows[k], lows[k + 1]
        slope = (y1 - y0) / (x1 - x0)
        if slope <= 0:
            continue
        touches = _touches(lows, k, slope, c)
        if len(touches) < c.min_touches:
            continue

        price = float(ctx.prices[i])
        support = y0 + slope * (i - x0)
        first, last = touches[0][0], touches[-1][0]
        between = [p for idx, p in highs if first <= idx <= last]
        resistance = max(between) if between else price * (1 + c.target_extension)

        volume = volume_surge(ctx.volumes, i, c.volume_factor, c.volume_lookback)
        rsi = rsi_within(ctx.rsi, i, c.rsi_low, c.rsi_high)
        ma = price_above_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
        confidence = _confidence(touches, [volume, rsi, ma], slope > c.steep_slope, c)

        return trade_pattern(
            PatternType.RISING_TRENDLINE, i, SignalDirection.BULLISH, confidence,
            strength_for(confidence, moderate=c.moderate, strong=c.strong),
            entry=price,
            stop=support * (1 - c.stop_buffer),
            target=resistance * (1 + c.target_extension),
            description=f"Rising support trendline with {len(touches)} touches",
            volume=volume, rsi=rsi, ma=ma,
            key_levels={"support": support, "resistance": resistance},
            metadata={"touches": len(touches), "slope": slope, "start_index": first, "end_index": last},
        )
    return None


def _falling_trendline(ctx, i, highs, lows, c):
    for k in range(len(highs) - 2):
        (x0, y0), (x1, y1) = highs[k], highs[k + 1]
        slope = (y1 - y0) / (x1 - x0)
        if slope >= 0:
            continue
        touches = _touches(highs, k, slope, c)
        if len(touches) < c.min_touches:
            continue

        price = float(ctx.prices[i])
        resistance = y0 + slope * (i - x0)
        first, last = touches[0][0], touches[-1][0]
        between = [p for idx, p in lows if first <= idx <= last]
        support = min(between) if between else price * (1 - c.target_extension)

        volume = volume_surge(ctx.volumes, i, c.volume_factor, c.volume_lookback)
        rsi = rsi_within(ctx.rsi, i, c.rsi_low, c.rsi_high)
        ma = price_below_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
        confidence = _confidence(touches, [volume, rsi, ma], slope < -c.steep_slope, c)

        return trade_pattern(
            PatternType.FALLING_TRENDLINE, i, SignalDirection.BEARISH, confidence,
            strength_for(confidence, moderate=c.moderate, strong=c.strong),
            entry=price,
            stop=resistance * (1 + c.stop_buffer),
            target=support * (1 - c.target_extension),
            description=f"Falling resistance trendline with {len(touches)} touches",
            volume=volume, rsi=rsi, ma=ma,
            key_levels={"support": support, "resistance": resistance},
            metadata={"touches": len(touches), "slope": slope, "start_index": first, "end_index": last},
        )
    return None
