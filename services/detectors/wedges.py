"""
Rising and falling wedges.

A rising wedge (both trendlines up, converging) is read as bearish; a falling
wedge (both down, converging) as bullish.
"""

from dataclasses import dataclass

from models.technicals import DetectedPattern, PatternType, SignalDirection, TrendDirection
from services.confirmation import (
    ConfirmationKind, ConfirmationSignal, accumulate_confidence, price_above_averages,
    price_below_averages, strength_for, trailing_volume_average, volume_dry_up,
)
from services.detectors.context import PatternContext, trade_pattern
from services.swing_detector import find_swings


@dataclass(frozen=True)
class WedgeConstants:
    lookback: int = 40
    first_index: int = 15
    window_before: int = 25
    window_after: int = 5
    min_window: int = 15
    swing_window: int = 2
    volume_lookback: int = 10
    volume_factor: float = 0.7
    volume_tail: int = 3
    volume_tail_factor: float = 0.8
    rising_rsi_floor: float = 60
    falling_rsi_ceiling: float = 40
    context_lookback: int = 20
    context_threshold: float = 0.05
    rising_base_confidence: float = 0.5
    falling_base_confidence: float = 0.6
    volume_increment: float = 0.15
    rsi_increment: float = 0.15
    ma_increment: float = 0.1
    context_increment: float = 0.1
    strong: float = 0.8
    moderate: float = 0.65
    stop_buffer: float = 0.015
    high_breakout_risk: float = 0.10
    medium_breakout_risk: float = 0.05
    short_duration: int = 10
    medium_duration: int = 20
    apex_factor: float = 1.2


WEDGE_CONSTANTS = WedgeConstants()


def detect_wedges(ctx: PatternContext, constants: WedgeConstants = WEDGE_CONSTANTS) -> list[DetectedPattern]:
    c = constants
    n = ctx.n
    lookback = min(c.lookback, n - 10)
    results: list[DetectedPattern] = []

    for i in range(max(c.first_index, n - lookback), n - c.window_after):
        start = max(0, i - c.window_before)
        segment = ctx.prices[start:i + c.window_after]
        if len(segment) < c.min_window:
            continue

        swing_highs, swing_lows = find_swings(segment, c.swing_window)
        if len(swing_highs) < 2 or len(swing_lows) < 2:
            continue
        h1, h2 = [(start + p.index, p.price) for p in swing_highs[-2:]]
        l1, l2 = [(start + p.index, p.price) for p in swing_lows[-2:]]

        for detect in (_rising_wedge, _falling_wedge):
            pattern = detect(ctx, i, h1, h2, l1, l2, c)
            if pattern is not None:
                results.append(pattern)

    return results


def _slope(a, b) -> float:
    return (b[1] - a[1]) / (b[0] - a[0])


def _volume_fading(ctx, i, c) -> ConfirmationSignal:
    current = volume_dry_up(ctx.volumes, i, c.volume_factor, c.volume_lookback)
    avg = trailing_volume_average(ctx.volumes, i, c.volume_lookback)
    tail = trailing_volume_average(ctx.volumes, i, c.volume_tail)
    return ConfirmationSignal(
        ConfirmationKind.VOLUME,
        current.satisfied and tail < avg * c.volume_tail_factor,
        current.magnitude,
    )


def _market_context(prices, i, c) -> TrendDirection:
    ref = prices[max(0, i - c.context_lookback)]
    change = (prices[i] - ref) / ref
    if change > c.context_threshold:
        return TrendDirection.UPTREND
    if change < -c.context_threshold:
        return TrendDirection.DOWNTREND
    return TrendDirection.SIDEWAYS


def _wedge_metadata(ctx, i, h1, h2, l1, context: TrendDirection, c) -> dict:
    move = abs(ctx.prices[i] - ctx.prices[i - 1]) / ctx.prices[i - 1]
    if move > c.high_breakout_risk:
        fake_breakout_risk = "high"
    elif move > c.medium_breakout_risk:
        fake_breakout_risk = "medium"
    else:
        fake_breakout_risk = "low"

    duration = h2[0] - h1[0]
    if duration < c.short_duration:
        timeframe = "short"
    elif duration < c.medium_duration:
        timeframe = "medium"
    else:
        timeframe = "long"

    return {
        "fake_breakout_risk": fake_breakout_risk,
        "completion_timeframe": timeframe,
        "apex_index": i + int(duration * c.apex_factor),
        "market_context": context.value,
        "start_index": min(h1[0], l1[0]),
    }


def _rising_wedge(ctx, i, h1, h2, l1, l2, c):
    if h2[1] <= h1[1] or l2[1] <= l1[1]:
        return None
    if _slope(h1, h2) >= _slope(l1, l2):
        return None

    volume = _volume_fading(ctx, i, c)
    rsi_now = float(ctx.rsi[i])
    rsi = ConfirmationSignal(
        ConfirmationKind.RSI, rsi_now < ctx.rsi[h1[0]] and rsi_now > c.rising_rsi_floor, rsi_now,
    )
    ma = price_below_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
    context = _market_context(ctx.prices, i, c)
    in_context = ConfirmationSignal(ConfirmationKind.CONTEXT, context == TrendDirection.UPTREND)
    confidence = accumulate_confidence(
        c.rising_base_confidence,
        [volume, rsi, ma, in_context],
        [c.volume_increment, c.rsi_increment, c.ma_increment, c.context_increment],
    )

    height = h2[1] - l2[1]
    metadata = _wedge_metadata(ctx, i, h1, h2, l1, context, c)
    return trade_pattern(
        PatternType.RISING_WEDGE, i, SignalDirection.BEARISH, confidence,
        strength_for(confidence, moderate=c.moderate, strong=c.strong),
        entry=ctx.prices[i],
        stop=h2[1] * (1 + c.stop_buffer),
        target=l2[1] - height,
        description=f"Bearish rising wedge in a {context.value} market, completion {metadata['completion_timeframe']}",
        volume=volume, rsi=rsi, ma=ma,
        key_levels={"upper_start": h1[1], "upper_end": h2[1], "lower_start": l1[1], "lower_end": l2[1]},
        metadata=metadata,
    )


def _falling_wedge(ctx, i, h1, h2, l1, l2, c):
    if h2[1] >= h1[1] or l2[1] >= l1[1]:
        return None
    if _slope(l1, l2) >= _slope(h1, h2):
        return None

    volume = _volume_fading(ctx, i, c)
    rsi_now = float(ctx.rsi[i])
    rsi = ConfirmationSignal(
        ConfirmationKind.RSI, rsi_now > ctx.rsi[l1[0]] and rsi_now < c.falling_rsi_ceiling, rsi_now,
    )
    ma = price_above_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
    context = _market_context(ctx.prices, i, c)
    in_context = ConfirmationSignal(ConfirmationKind.CONTEXT, context == TrendDirection.DOWNTREND)
    confidence = accumulate_confidence(
        c.falling_base_confidence,
        [volume, rsi, ma, in_context],
        [c.volume_increment, c.rsi_increment, c.ma_increment, c.context_increment],
    )

    height = h2[1] - l2[1]
    metadata = _wedge_metadata(ctx, i, h1, h2, l1, context, c)
    return trade_pattern(
        PatternType.FALLING_WEDGE, i, SignalDirection.BULLISH, confidence,
        strength_for(confidence, moderate=c.moderate, strong=c.strong),
        entry=ctx.prices[i],
        stop=l2[1] * (1 - c.stop_buffer),
        target=h2[1] + height,
        description=f"Bullish falling wedge in a {context.value} market, completion {metadata['completion_timeframe']}",
        volume=volume, rsi=rsi, ma=ma,
        key_levels={"upper_start": h1[1], "upper_end": h2[1], "lower_start": l1[1], "lower_end": l2[1]},
        metadata=metadata,
    )
