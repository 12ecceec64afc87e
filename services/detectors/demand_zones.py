"""
Demand zones: price areas where buying pressure produced a bounce.

Five independent methods propose candidate zones (volume spike, support level,
RSI oversold bounce, ATR-sized drop, Fibonacci retracement). Candidates are
scored, merged when they overlap in both price and time, and only recent
("active") zones are returned.
"""

from dataclasses import dataclass

import numpy as np

from models.technicals import DetectedPattern, PatternStrength, PatternType, SignalDirection
from services.detectors.context import PatternContext, trade_pattern
from services.swing_detector import find_swing_lows, find_swings


@dataclass(frozen=True)
class DemandZoneConstants:
    spike_first_index: int = 20
    spike_volume_ratio: float = 1.5
    spike_rsi_ceiling: float = 40
    spike_look_ahead: int = 5
    spike_min_bounce: float = 0.02
    support_window: int = 10
    support_min_touches: int = 2
    support_look_ahead: int = 5
    rsi_first_index: int = 14
    rsi_oversold: float = 30
    rsi_look_back: int = 3
    rsi_look_ahead: int = 3
    rsi_min_bounce: float = 0.03
    atr_first_index: int = 14
    atr_drop_lookback: int = 5
    atr_drop_multiple: float = 1.5
    atr_look_ahead: int = 3
    atr_min_bounce: float = 0.02
    fib_swing_window: int = 20
    fib_ratios: tuple = (0.236, 0.382, 0.5, 0.618, 0.786)
    fib_tolerance: float = 0.02
    fib_look_ahead: int = 5
    fib_min_bounce: float = 0.02
    touch_tolerance: float = 0.02
    zone_width: float = 0.01
    zone_span: int = 2
    zone_volume_window: int = 3
    average_volume_period: int = 20
    entry_offset: float = 0.001
    stop_offset: float = 0.02
    target_bounce_multiple: float = 2.0
    active_age: int = 10
    max_zones: int = 5


DEMAND_ZONE_CONSTANTS = DemandZoneConstants()

# score points per input, highest threshold first
VOLUME_POINTS = ((2.0, 3), (1.5, 2), (1.2, 1))
BOUNCE_POINTS = ((0.05, 3), (0.03, 2), (0.02, 1))
STRENGTH_BASE = {
    PatternStrength.WEAK: 20,
    PatternStrength.MODERATE: 40,
    PatternStrength.STRONG: 60,
    PatternStrength.VERY_STRONG: 80,
}


@dataclass
class _Candidate:
    index: int
    price: float
    method: str
    volume_multiplier: float
    bounce: float


def detect_demand_zones(
    ctx: PatternContext, constants: DemandZoneConstants = DEMAND_ZONE_CONSTANTS,
) -> list[DetectedPattern]:
    c = constants
    candidates: list[_Candidate] = []
    candidates.extend(_volume_spike_candidates(ctx, c))
    candidates.extend(_support_candidates(ctx, c))
    candidates.extend(_rsi_bounce_candidates(ctx, c))
    candidates.extend(_atr_drop_candidates(ctx, c))
    candidates.extend(_fibonacci_candidates(ctx, c))

    zones = [_build_zone(ctx, cand, c) for cand in candidates]
    return _merge_zones(zones, c)


def bounce_strength(prices: np.ndarray, index: int, look_ahead: int) -> float:
    """Largest rise from prices[index] within the next `look_ahead` bars, as a fraction."""
    low = prices[index]
    high = prices[index:index + look_ahead].max()
    return float((high - low) / low)


def count_touches(prices: np.ndarray, level: float, start: int, tolerance: float) -> int:
    return int(np.sum(np.abs(prices[start:] - level) <= level * tolerance))


def _lowest(prices: np.ndarray, start: int, end: int) -> int:
    start = max(0, start)
    return start + int(np.argmin(prices[start:end]))


# ---------- Candidate methods ----------

def _volume_spike_candidates(ctx, c):
    p = ctx.prices
    for i in range(c.spike_first_index, ctx.n - c.spike_look_ahead):
        ratio = float(ctx.volume_ratio[i])
        if ratio <= c.spike_volume_ratio or ctx.rsi[i] >= c.spike_rsi_ceiling:
            continue
        low_idx = _lowest(p, i, i + c.spike_look_ahead)
        bounce = bounce_strength(p, low_idx, c.spike_look_ahead)
        if bounce > c.spike_min_bounce:
            yield _Candidate(low_idx, float(p[low_idx]), "Volume Spike Bounce", ratio, bounce)


def _support_candidates(ctx, c):
    p = ctx.prices
    for swing in find_swing_lows(p, c.support_window):
        touches = count_touches(p, swing.price, swing.index, c.touch_tolerance)
        if touches < c.support_min_touches:
            continue
        bounce = bounce_strength(p, swing.index, c.support_look_ahead)
        if bounce > 0:
            yield _Candidate(swing.index, swing.price, "Support Level Bounce", float(touches), bounce)


def _rsi_bounce_candidates(ctx, c):
    p = ctx.prices
    for i in range(c.rsi_first_index, ctx.n - c.rsi_look_ahead):
        if not (ctx.rsi[i] < c.rsi_oversold and ctx.rsi[i] > ctx.rsi[i - 1]):
            continue
        low_idx = _lowest(p, i - c.rsi_look_back, i + 1)
        bounce = bounce_strength(p, low_idx, c.rsi_look_ahead)
        if bounce > c.rsi_min_bounce:
            yield _Candidate(low_idx, float(p[low_idx]), "RSI Oversold Bounce", 1.0, bounce)


def _atr_drop_candidates(ctx, c):
    p = ctx.prices
    for i in range(c.atr_first_index, ctx.n - c.atr_look_ahead):
        atr = float(ctx.atr[i])
        if atr <= 0:
            continue
        recent_high = float(p[max(0, i - c.atr_drop_lookback):i + 1].max())
        drop = recent_high - p[i]
        if drop < atr * c.atr_drop_multiple:
            continue
        low_idx = _lowest(p, i - c.atr_drop_lookback, i + 1)
        bounce = bounce_strength(p, low_idx, c.atr_look_ahead)
        if bounce > c.atr_min_bounce:
            yield _Candidate(low_idx, float(p[low_idx]), "ATR-Based Drop Bounce", float(drop / atr), bounce)


def _fibonacci_candidates(ctx, c):
    p = ctx.prices
    highs, lows = find_swings(p, c.fib_swing_window)
    if not highs or not lows:
        return
    swing_high = max(h.price for h in highs)
    swing_low = min(l.price for l in lows)
    span = swing_high - swing_low

    for ratio in c.fib_ratios:
        level = swing_low + span * ratio
        closest = int(np.argmin(np.abs(p - level)))
        if abs(p[closest] - level) >= level * c.fib_tolerance:
            continue
        bounce = bounce_strength(p, closest, c.fib_look_ahead)
        if bounce > c.fib_min_bounce:
            yield _Candidate(closest, float(p[closest]), f"Fibonacci {ratio * 100:.1f}% Retracement", 1.0, bounce)


# ---------- Scoring ----------

def zone_strength(volume_multiplier: float, bounce: float, age: int, touches: int) -> PatternStrength:
    score = next((pts for limit, pts in VOLUME_POINTS if volume_multiplier > limit), 0)
    score += next((pts for limit, pts in BOUNCE_POINTS if bounce > limit), 0)
    if age < 3:
        score += 2
    elif age < 7:
        score += 1
    if touches >= 3:
        score += 2
    elif touches >= 2:
        score += 1

    if score >= 7:
        return PatternStrength.VERY_STRONG
    if score >= 5:
        return PatternStrength.STRONG
    if score >= 3:
        return PatternStrength.MODERATE
    return PatternStrength.WEAK


def zone_confidence(strength: PatternStrength, bounce: float, volume_multiplier: float, age: int) -> float:
    """Confidence on a 0-1 scale."""
    score = STRENGTH_BASE[strength]
    score += min(20, bounce * 400)
    score += min(15, (volume_multiplier - 1) * 10)
    score -= min(20, age * 2)
    return max(0.0, min(100.0, score)) / 100


def _build_zone(ctx: PatternContext, cand: _Candidate, c: DemandZoneConstants) -> DetectedPattern:
    age = ctx.n - 1 - cand.index
    touches = count_touches(ctx.prices, cand.price, cand.index, c.touch_tolerance)
    strength = zone_strength(cand.volume_multiplier, cand.bounce, age, touches)
    confidence = zone_confidence(strength, cand.bounce, cand.volume_multiplier, age)

    lo = max(0, cand.index - c.zone_volume_window)
    zone_volume = float(ctx.volumes[lo:cand.index + c.zone_volume_window + 1].sum())
    traded = ctx.volumes[ctx.volumes > 0][-c.average_volume_period:]
    average_volume = float(traded.mean()) if len(traded) else 0.0

    return trade_pattern(
        PatternType.DEMAND_ZONE, cand.index, SignalDirection.BULLISH, confidence, strength,
        entry=cand.price * (1 + c.entry_offset),
        stop=cand.price * (1 - c.stop_offset),
        target=cand.price * (1 + cand.bounce * c.target_bounce_multiple),
        description=cand.method,
        volume=cand.volume_multiplier > 1.2,
        key_levels={
            "price": cand.price,
            "zone_high": cand.price * (1 + c.zone_width),
            "zone_low": cand.price * (1 - c.zone_width),
        },
        metadata={
            "start_index": max(0, cand.index - c.zone_span),
            "end_index": min(ctx.n - 1, cand.index + c.zone_span),
            "touches": touches,
            "age": age,
            "is_active": age < c.active_age,
            "bounce_strength": round(cand.bounce, 4),
            "volume_multiplier": round(cand.volume_multiplier, 4),
            "zone_volume": zone_volume,
            "average_volume": average_volume,
            "volume_ratio": zone_volume / average_volume if average_volume > 0 else 1.0,
        },
    )


def _overlaps(a: DetectedPattern, b: DetectedPattern) -> bool:
    price_overlap = not (
        a.key_levels["zone_high"] < b.key_levels["zone_low"]
        or b.key_levels["zone_high"] < a.key_levels["zone_low"]
    )
    time_overlap = not (
        a.metadata["end_index"] < b.metadata["start_index"]
        or b.metadata["end_index"] < a.metadata["start_index"]
    )
    return price_overlap and time_overlap


def _merge_zones(zones: list[DetectedPattern], c: DemandZoneConstants) -> list[DetectedPattern]:
    merged: list[DetectedPattern] = []
    for zone in sorted(zones, key=lambda z: z.confidence, reverse=True):
        clash = next((k for k, kept in enumerate(merged) if _overlaps(zone, kept)), None)
        if clash is None:
            merged.append(zone)
        elif zone.confidence > merged[clash].confidence:
            merged[clash] = zone

    active = [z for z in merged if z.metadata["is_active"]]
    active.sort(key=lambda z: z.confidence, reverse=True)
    return active[:c.max_zones]
