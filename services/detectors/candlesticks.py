"""
Single and two-bar candlestick patterns: doji, hammer, shooting star and
bullish/bearish engulfing.

Bars are read from the context's opens, highs and lows. On a close-only series
each bar opens at the previous close and its range is the body, so only
engulfing reversals can fire there.
"""

from dataclasses import dataclass

from models.technicals import DetectedPattern, PatternType, SignalDirection
from services.confirmation import accumulate_confidence, strength_for, volume_surge
from services.detectors.context import PatternContext, trade_pattern


@dataclass(frozen=True)
class CandlestickConstants:
    lookback: int = 30
    doji_body_ratio: float = 0.1
    shadow_body_ratio: float = 2.0
    opposite_shadow_ratio: float = 0.5
    engulf_body_ratio: float = 1.1
    trend_bars: int = 5
    volume_factor: float = 1.5
    volume_bonus: float = 0.05
    doji_confidence: float = 0.6
    hammer_confidence: float = 0.75
    shooting_star_confidence: float = 0.8
    engulfing_confidence: float = 0.85
    moderate: float = 0.7
    strong: float = 0.8
    very_strong: float = 0.9
    stop_buffer: float = 0.01
    reward_ratio: float = 2.0


CANDLESTICK_CONSTANTS = CandlestickConstants()


@dataclass(frozen=True)
class _Bar:
    open: float
    high: float
    low: float
    close: float

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def upper_shadow(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_shadow(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def bullish(self) -> bool:
        return self.close > self.open

    @property
    def bearish(self) -> bool:
        return self.close < self.open


def _bar(ctx: PatternContext, i: int) -> _Bar:
    o, c = float(ctx.opens[i]), float(ctx.prices[i])
    return _Bar(
        open=o,
        high=max(float(ctx.highs[i]), o, c),
        low=min(float(ctx.lows[i]), o, c),
        close=c,
    )


def detect_candlesticks(
    ctx: PatternContext, constants: CandlestickConstants = CANDLESTICK_CONSTANTS,
) -> list[DetectedPattern]:
    """Scan the last `lookback` bars; results are in bar order."""
    c = constants
    n = ctx.n
    results: list[DetectedPattern] = []

    for i in range(max(1, n - c.lookback), n):
        bar = _bar(ctx, i)
        prev = _bar(ctx, i - 1)
        prior_close = float(ctx.prices[i - c.trend_bars]) if i >= c.trend_bars else None

        if bar.range > 0 and bar.body / bar.range < c.doji_body_ratio:
            results.append(_candle(ctx, i, bar, PatternType.DOJI, SignalDirection.NEUTRAL, c.doji_confidence, c))

        long_lower = (
            bar.lower_shadow >= bar.body * c.shadow_body_ratio
            and bar.upper_shadow < bar.body * c.opposite_shadow_ratio
        )
        long_upper = (
            bar.upper_shadow >= bar.body * c.shadow_body_ratio
            and bar.lower_shadow < bar.body * c.opposite_shadow_ratio
        )
        if bar.body > 0 and prior_close is not None:
            # the same shape after a rally is a hanging man, not a hammer
            if long_lower and bar.close < prior_close:
                results.append(_candle(ctx, i, bar, PatternType.HAMMER, SignalDirection.BULLISH, c.hammer_confidence, c))
            if long_upper and bar.close > prior_close:
                results.append(_candle(
                    ctx, i, bar, PatternType.SHOOTING_STAR, SignalDirection.BEARISH, c.shooting_star_confidence, c,
                ))

        if bar.body > prev.body * c.engulf_body_ratio:
            if prev.bearish and bar.bullish and bar.open <= prev.close and bar.close >= prev.open:
                results.append(_candle(
                    ctx, i, bar, PatternType.BULLISH_ENGULFING, SignalDirection.BULLISH, c.engulfing_confidence, c,
                ))
            elif prev.bullish and bar.bearish and bar.open >= prev.close and bar.close <= prev.open:
                results.append(_candle(
                    ctx, i, bar, PatternType.BEARISH_ENGULFING, SignalDirection.BEARISH, c.engulfing_confidence, c,
                ))

    return results


def _candle(ctx, i, bar: _Bar, pattern_type, signal, confidence, c: CandlestickConstants) -> DetectedPattern:
    volume = volume_surge(ctx.volumes, i, c.volume_factor)
    confidence = accumulate_confidence(confidence, [volume], c.volume_bonus)

    entry = bar.close
    if signal == SignalDirection.BEARISH:
        stop = bar.high * (1 + c.stop_buffer)
        target = entry - c.reward_ratio * (stop - entry)
    elif signal == SignalDirection.BULLISH:
        stop = bar.low * (1 - c.stop_buffer)
        target = entry + c.reward_ratio * (entry - stop)
    else:
        # indecision: trade levels are the bar's own extremes
        stop = bar.low * (1 - c.stop_buffer)
        target = bar.high * (1 + c.stop_buffer)

    name = pattern_type.value.replace("_", " ").title()
    return trade_pattern(
        pattern_type,
        i,
        signal,
        confidence,
        strength_for(confidence, moderate=c.moderate, strong=c.strong, very_strong=c.very_strong),
        entry=entry,
        stop=stop,
        target=target,
        description=f"{name} at {bar.close:.2f}",
        volume=volume,
        key_levels={"open": bar.open, "high": bar.high, "low": bar.low, "close": bar.close},
        metadata={"name": name, "body": bar.body, "range": bar.range},
    )
