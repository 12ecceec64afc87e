"""Head and shoulders (bearish, from swing highs) and its inverse (bullish, from swing lows)."""

from dataclasses import dataclass

from models.technicals import DetectedPattern, PatternType, SignalDirection
from services.confirmation import (
    accumulate_confidence, price_above_averages, price_below_averages,
    rsi_above, rsi_below, strength_for, volume_relative,
)
from services.detectors.context import PatternContext, trade_pattern
from services.swing_detector import find_swing_highs, find_swing_lows


@dataclass(frozen=True)
class HeadAndShouldersConstants:
    lookback: int = 60
    first_index: int = 20
    window_before: int = 30
    window_after: int = 10
    min_window: int = 20
    swing_window: int = 3
    shoulder_tolerance: float = 0.05
    neckline_offset: float = 0.02
    rsi_overbought: float = 70
    rsi_oversold: float = 30
    base_confidence: float = 0.6
    increment: float = 0.1
    strong: float = 0.8
    moderate: float = 0.7
    stop_buffer: float = 0.02


HEAD_AND_SHOULDERS_CONSTANTS = HeadAndShouldersConstants()


def detect_head_and_shoulders(
    ctx: PatternContext, constants: HeadAndShouldersConstants = HEAD_AND_SHOULDERS_CONSTANTS,
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

        highs = [(start + p.index, p.price) for p in find_swing_highs(segment, c.swing_window)]
        lows = [(start + p.index, p.price) for p in find_swing_lows(segment, c.swing_window)]

        top = _head_and_shoulders(ctx, i, highs, c)
        if top is not None:
            results.append(top)
        bottom = _inverse_head_and_shoulders(ctx, i, lows, c)
        if bottom is not None:
            results.append(bottom)

    return results


def _shoulders_match(left: float, right: float, tolerance: float) -> bool:
    return abs(left - right) / max(left, right) <= tolerance


def _head_and_shoulders(ctx, i, highs, c):
    for (ls_idx, ls), (head_idx, head), (rs_idx, rs) in zip(highs, highs[1:], highs[2:]):
        if head <= ls or head <= rs:
            continue
        if not _shoulders_match(ls, rs, c.shoulder_tolerance):
            continue

        neckline = min(ls, rs) * (1 - c.neckline_offset)
        head_volume = ctx.volumes[head_idx]
        volume = volume_relative(head_volume, ctx.volumes[ls_idx]) and volume_relative(
            ctx.volumes[rs_idx], head_volume, above=False
        )
        rsi = rsi_above(ctx.rsi, head_idx, c.rsi_overbought)
        ma = price_below_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
        confidence = accumulate_confidence(c.base_confidence, [volume, rsi, ma], c.increment)

        return trade_pattern(
            PatternType.HEAD_AND_SHOULDERS, i, SignalDirection.BEARISH, confidence,
            strength_for(confidence, moderate=c.moderate, strong=c.strong),
            entry=ctx.prices[i],
            stop=head * (1 + c.stop_buffer),
            target=neckline - (head - neckline),
            description=f"Head and shoulders with head at {head:.2f}, neckline {neckline:.2f}",
            volume=volume, rsi=rsi, ma=ma,
            key_levels={"left_shoulder": ls, "head": head, "right_shoulder": rs, "neckline": neckline},
            metadata={"start_index": ls_idx, "end_index": rs_idx, "head_index": head_idx},
        )
    return None


def _inverse_head_and_shoulders(ctx, i, lows, c):
    for (ls_idx, ls), (head_idx, head), (rs_idx, rs) in zip(lows, lows[1:], lows[2:]):
        if head >= ls or head >= rs:
            continue
        if not _shoulders_match(ls, rs, c.shoulder_tolerance):
            continue

        neckline = max(ls, rs) * (1 + c.neckline_offset)
        head_volume = ctx.volumes[head_idx]
        volume = volume_relative(head_volume, ctx.volumes[ls_idx]) and volume_relative(
            ctx.volumes[rs_idx], head_volume
        )
        rsi = rsi_below(ctx.rsi, head_idx, c.rsi_oversold)
        ma = price_above_averages(ctx.prices, i, ctx.sma20, ctx.sma50)
        confidence = accumulate_confidence(c.base_confidence, [volume, rsi, ma], c.increment)

        return trade_pattern(
            PatternType.INVERSE_HEAD_AND_SHOULDERS, i, SignalDirection.BULLISH, confidence,
            strength_for(confidence, moderate=c.moderate, strong=c.strong),
            entry=ctx.prices[i],
            stop=head * (1 - c.stop_buffer),
            target=neckline + (neckline - head),
            description=f"Inverse head and shoulders with head at {head:.2f}, neckline {neckline:.2f}",
            volume=volume, rsi=rsi, ma=ma,
            key_levels={"left_shoulder": ls, "head": head, "right_shoulder": rs, "neckline": neckline},
            metadata={"start_index": ls_idx, "end_index": rs_idx, "head_index": head_idx},
        )
    return None
