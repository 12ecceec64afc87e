"""
Momentum and volume driven setups: breakouts, breakdowns, reversals, volume
spikes and price/RSI divergence. Each candidate carries a 0-100 pattern score
and a reliability score that also rewards volume and a trending market.
"""

from dataclasses import dataclass

import numpy as np

from models.technicals import DetectedPattern, PatternStrength, PatternType, SignalDirection, TrendDirection
from services.detectors.context import PatternContext, trade_pattern
from services.swing_detector import find_swings


@dataclass(frozen=True)
class EnhancedPatternConstants:
    first_index: int = 20
    edge: int = 5
    reversal_edge: int = 10
    level_lookback: int = 20
    breakout_margin: float = 0.005
    volume_period: int = 20
    reversal_move: float = 0.02
    bullish_rsi_ceiling: float = 35
    bearish_rsi_floor: float = 65
    reversal_volume_ratio: float = 1.2
    spike_volume_ratio: float = 2.0
    spike_move: float = 0.02
    divergence_lookback: int = 10
    signal_lookback: int = 5
    breakout_threshold: float = 40
    reversal_threshold: float = 45
    momentum_threshold: float = 45
    spike_threshold: float = 70
    structure_lookback: int = 20
    structure_min_bars: int = 10
    structure_swing_window: int = 2
    atr_period: int = 14
    fallback_atr: float = 0.02
    stop_atr: float = 2.0
    target_atr: float = 3.0
    recent_bars: int = 20
    max_patterns: int = 8


ENHANCED_PATTERN_CONSTANTS = EnhancedPatternConstants()


@dataclass(frozen=True)
class MarketStructure:
    higher_highs: bool = False
    higher_lows: bool = False
    lower_highs: bool = False
    lower_lows: bool = False
    trend: TrendDirection = TrendDirection.SIDEWAYS


def detect_enhanced_patterns(
    ctx: PatternContext, constants: EnhancedPatternConstants = ENHANCED_PATTERN_CONSTANTS,
) -> list[DetectedPattern]:
    c = constants
    candidates: list[DetectedPattern] = []
    candidates.extend(_breakouts(ctx, c))
    candidates.extend(_reversals(ctx, c))
    candidates.extend(_volume_spikes(ctx, c))
    candidates.extend(_momentum_divergences(ctx, c))
    return _select(candidates, ctx.n, c)


# ---------- Shared measures ----------

def average_volume(volumes: np.ndarray, index: int, period: int) -> float:
    """Mean of the traded (non-zero) volumes over the `period` bars ending at index."""
    window = volumes[max(0, index - period + 1):index + 1]
    traded = window[window > 0]
    return float(traded.mean()) if len(traded) else 0.0


def volume_ratio_at(volumes: np.ndarray, index: int, period: int) -> float:
    avg = average_volume(volumes, index, period)
    return float(volumes[index] / avg) if avg > 0 else 1.0


def local_atr(prices: np.ndarray, index: int, period: int, fallback: float) -> float:
    """Mean absolute close-to-close move over `period` bars ending at index."""
    if index < period:
        return float(prices[index] * fallback)
    moves = np.abs(np.diff(prices[index - period:index + 1]))
    return float(moves.sum() / period)


def market_structure(prices: np.ndarray, index: int, c: EnhancedPatternConstants) -> MarketStructure:
    recent = prices[max(0, index - c.structure_lookback):index + 1]
    if len(recent) < c.structure_min_bars:
        return MarketStructure()

    highs, lows = find_swings(recent, c.structure_swing_window)
    hh = len(highs) >= 2 and highs[-1].price > highs[-2].price
    hl = len(lows) >= 2 and lows[-1].price > lows[-2].price
    lh = len(highs) >= 2 and highs[-1].price < highs[-2].price
    ll = len(lows) >= 2 and lows[-1].price < lows[-2].price

    trend = TrendDirection.SIDEWAYS
    if hh and hl:
        trend = TrendDirection.UPTREND
    elif lh and ll:
        trend = TrendDirection.DOWNTREND
    return MarketStructure(hh, hl, lh, ll, trend)


def strength_from_score(score: float) -> PatternStrength:
    if score >= 85:
        return PatternStrength.VERY_STRONG
    if score >= 70:
        return PatternStrength.STRONG
    if score >= 55:
        return PatternStrength.MODERATE
    return PatternStrength.WEAK


def reliability_score(score: float, volume_ratio: float, structure: MarketStructure) -> float:
    reliability = score * 0.6
    if volume_ratio > 1.5:
        reliability += 15
    elif volume_ratio > 1.2:
        reliability += 10
    if structure.trend != TrendDirection.SIDEWAYS:
        reliability += 10
    return min(100.0, reliability)


def _move(prices: np.ndarray, i: int) -> float:
    return float((prices[i] - prices[i - 1]) / prices[i - 1])


def _emit(ctx, c, pattern_type, i, signal, score, volume_ratio, description, entry_offset,
          volume=False, rsi=False, ma=False, extra=None) -> DetectedPattern:
    price = float(ctx.prices[i])
    atr = local_atr(ctx.prices, i, c.atr_period, c.fallback_atr)
    long = signal != SignalDirection.BEARISH
    structure = market_structure(ctx.prices, i, c)
    metadata = {
        "pattern_score": score,
        "reliability_score": reliability_score(score, volume_ratio, structure),
        "market_context": structure.trend.value,
        "market_structure": {
            "higher_highs": structure.higher_highs,
            "higher_lows": structure.higher_lows,
            "lower_highs": structure.lower_highs,
            "lower_lows": structure.lower_lows,
        },
        "volume_ratio": round(volume_ratio, 4),
    }
    metadata.update(extra or {})

    return trade_pattern(
        pattern_type, i, signal, score / 100, strength_from_score(score),
        entry=price * (1 + entry_offset if long else 1 - entry_offset),
        stop=price - c.stop_atr * atr if long else price + c.stop_atr * atr,
        target=price + c.target_atr * atr if long else price - c.target_atr * atr,
        description=description,
        volume=volume, rsi=rsi, ma=ma,
        key_levels={"price": price, "atr": atr},
        metadata=metadata,
    )


def _ma_aligned(ctx, i, bullish: bool) -> bool:
    p, s20, s50 = ctx.prices[i], ctx.sma20[i], ctx.sma50[i]
    if bullish:
        return bool(p > s20 and s20 > s50)
    return bool(p < s20 and s20 < s50)


# ---------- Detectors ----------

def _breakouts(ctx, c):
    p, rsi = ctx.prices, ctx.rsi
    for i in range(c.first_index, ctx.n - c.edge):
        prior = p[i - c.level_lookback:i]
        ratio = volume_ratio_at(ctx.volumes, i, c.volume_period)
        move = abs(_move(p, i))

        if p[i] > prior.max() * (1 + c.breakout_margin):
            score = _breakout_score(ratio, rsi[i] > 50, move)
            if score > c.breakout_threshold:
                yield _emit(
                    ctx, c, PatternType.RESISTANCE_BREAKOUT, i, SignalDirection.BULLISH, score, ratio,
                    f"Price breaks above resistance with {ratio:.1f}x volume", 0.002,
                    volume=ratio > 1.5, rsi=rsi[i] > 50,
                    ma=p[i] > ctx.sma20[i] and p[i] > ctx.sma50[i],
                    extra={"resistance": float(prior.max())},
                )

        if p[i] < prior.min() * (1 - c.breakout_margin):
            score = _breakout_score(ratio, rsi[i] < 50, move)
            if score > c.breakout_threshold:
                yield _emit(
                    ctx, c, PatternType.SUPPORT_BREAKDOWN, i, SignalDirection.BEARISH, score, ratio,
                    f"Price breaks below support with {ratio:.1f}x volume", 0.002,
                    volume=ratio > 1.5, rsi=rsi[i] < 50,
                    ma=p[i] < ctx.sma20[i] and p[i] < ctx.sma50[i],
                    extra={"support": float(prior.min())},
                )


def _breakout_score(ratio: float, rsi_on_side: bool, move: float) -> float:
    score = 50
    if ratio > 2.0:
        score += 20
    elif ratio > 1.5:
        score += 15
    elif ratio > 1.2:
        score += 10
    if rsi_on_side:
        score += 15
    if move > 0.03:
        score += 15
    elif move > 0.02:
        score += 10
    return min(100, score)


def _reversals(ctx, c):
    p, rsi = ctx.prices, ctx.rsi
    for i in range(c.first_index, ctx.n - c.reversal_edge):
        move = _move(p, i)
        ratio = volume_ratio_at(ctx.volumes, i, c.volume_period)
        if ratio <= c.reversal_volume_ratio:
            continue

        if move > c.reversal_move and rsi[i] < c.bullish_rsi_ceiling and rsi[i] > rsi[i - 1]:
            score = _reversal_score(ratio, rsi[i] < 30, abs(move))
            if score > c.reversal_threshold:
                yield _emit(
                    ctx, c, PatternType.BULLISH_REVERSAL, i, SignalDirection.BULLISH, score, 1.0,
                    "Bullish reversal from oversold RSI on rising volume", 0.001,
                    volume=True, rsi=rsi[i] < 30, ma=_ma_aligned(ctx, i, True),
                )

        if move < -c.reversal_move and rsi[i] > c.bearish_rsi_floor and rsi[i] < rsi[i - 1]:
            score = _reversal_score(ratio, rsi[i] > 70, abs(move))
            if score > c.reversal_threshold:
                yield _emit(
                    ctx, c, PatternType.BEARISH_REVERSAL, i, SignalDirection.BEARISH, score, 1.0,
                    "Bearish reversal from overbought RSI on rising volume", 0.001,
                    volume=True, rsi=rsi[i] > 70, ma=_ma_aligned(ctx, i, False),
                )


def _reversal_score(ratio: float, rsi_extreme: bool, move: float) -> float:
    score = 40
    if ratio > 1.5:
        score += 20
    elif ratio > 1.2:
        score += 15
    if rsi_extreme:
        score += 25
    if move > 0.03:
        score += 15
    elif move > 0.02:
        score += 10
    return min(100, score)


def _volume_spikes(ctx, c):
    p, rsi = ctx.prices, ctx.rsi
    for i in range(c.first_index, ctx.n - c.edge):
        ratio = volume_ratio_at(ctx.volumes, i, c.volume_period)
        move = _move(p, i)
        if ratio <= c.spike_volume_ratio or abs(move) <= c.spike_move:
            continue

        score = 50
        if ratio > 3.0:
            score += 25
        elif ratio > 2.0:
            score += 20
        elif ratio > 1.5:
            score += 15
        if abs(move) > 0.05:
            score += 20
        elif abs(move) > 0.03:
            score += 15
        elif abs(move) > 0.02:
            score += 10
        if 40 < rsi[i] < 60:
            score += 5
        score = min(100, score)
        if score <= c.spike_threshold:
            continue

        bullish = move > 0
        yield _emit(
            ctx, c, PatternType.VOLUME_SPIKE, i,
            SignalDirection.BULLISH if bullish else SignalDirection.BEARISH, score, ratio,
            f"Volume spike ({ratio:.1f}x) with {move * 100:.1f}% price move", 0.001,
            volume=True,
            rsi=rsi[i] > 45 if bullish else rsi[i] < 55,
            ma=p[i] > ctx.sma20[i] if bullish else p[i] < ctx.sma20[i],
        )


def _momentum_divergences(ctx, c):
    p, rsi = ctx.prices, ctx.rsi
    lb = c.divergence_lookback
    for i in range(max(c.first_index, lb), ctx.n - c.edge):
        prices = p[i - lb:i + 1]
        rsis = rsi[i - lb:i + 1]
        price_low = int(np.argmin(prices))
        rsi_low = int(np.argmin(rsis))
        if price_low == 0 or rsi_low == 0 or price_low == rsi_low:
            continue
        if not (prices[-1] < prices[0] and rsis[-1] > rsis[0]):
            continue

        price_trend = (prices[-1] - prices[0]) / prices[0]
        rsi_trend = rsis[-1] - rsis[0]
        divergence = abs(price_trend) * abs(rsi_trend) * 100
        score = 50
        if divergence > 0.1:
            score += 30
        elif divergence > 0.05:
            score += 20
        if rsi[i] < 30 or rsi[i] > 70:
            score += 20
        score = min(100, score)
        if score <= c.momentum_threshold:
            continue

        signal = _momentum_signal(p, rsi, i, c.signal_lookback)
        bullish = signal == SignalDirection.BULLISH
        yield _emit(
            ctx, c, PatternType.MOMENTUM_DIVERGENCE, i, signal, score, 1.0,
            "Price and RSI diverge, momentum is turning", 0.001,
            volume=volume_ratio_at(ctx.volumes, i, c.volume_period) > 1.2,
            rsi=True, ma=_ma_aligned(ctx, i, bullish),
            extra={"divergence_strength": round(float(divergence), 4)},
        )


def _momentum_signal(prices, rsi, i, lookback) -> SignalDirection:
    start = max(0, i - lookback)
    price_trend = prices[i] - prices[start]
    rsi_trend = rsi[i] - rsi[start]
    if price_trend > 0 and rsi_trend < 0:
        return SignalDirection.BEARISH
    return SignalDirection.BULLISH


# ---------- Selection ----------

def _select(candidates: list[DetectedPattern], n: int, c: EnhancedPatternConstants) -> list[DetectedPattern]:
    """Best recent candidate per pattern type, ranked by reliability then confidence."""
    ranked = sorted(
        candidates,
        key=lambda p: p.metadata["reliability_score"] * 0.7 + p.confidence * 100 * 0.3,
        reverse=True,
    )
    best: dict[PatternType, DetectedPattern] = {}
    for pattern in ranked:
        if n - pattern.index > c.recent_bars:
            continue
        current = best.get(pattern.pattern_type)
        if current is None or pattern.metadata["reliability_score"] > current.metadata["reliability_score"]:
            best[pattern.pattern_type] = pattern
    return list(best.values())[:c.max_patterns]
