"""
Composite 0-100 bullishness score built from six indicator sub-scores.
"""

import logging

import numpy as np

from models.technicals import (
    BullishnessBreakdown, BullishnessScore, BullishnessSignals, IndicatorSeries,
)
from utils.series import linear_fit, r_squared

logger = logging.getLogger(__name__)

TECHNICAL_WEIGHTS = {
    "moving_averages": 0.25,
    "rsi": 0.20,
    "macd": 0.20,
    "volume_analysis": 0.15,
    "price_action": 0.10,
    "trend_strength": 0.10,
}

# (sub-score, bullish text, bearish text, neutral text)
SIGNAL_TEXT = [
    ("moving_averages",
     "Strong MA alignment, price above key moving averages",
     "Weak MA alignment, price below key moving averages",
     "Mixed moving average alignment"),
    ("rsi",
     "RSI showing bullish momentum",
     "RSI at an extreme",
     "RSI neutral"),
    ("macd",
     "MACD confirming bullish trend",
     "MACD pointing lower",
     "MACD flat"),
    ("volume_analysis",
     "High volume supporting price movement",
     "Low volume, weak conviction",
     "Volume near average"),
    ("price_action",
     "Higher highs and higher lows",
     "Weak price action with lower lows",
     "Choppy price action"),
    ("trend_strength",
     "Strong upward trend confirmed",
     "Trend weakening or reversing",
     "No clear trend"),
]


def _clamp(score: float) -> float:
    return float(max(0, min(100, score)))


def _slope(values) -> float:
    """Regression slope over the finite values; 0 when fewer than two."""
    arr = np.asarray(values, dtype=float)
    arr = arr[np.isfinite(arr)]
    if len(arr) < 2:
        return 0.0
    return linear_fit(arr)[0]


def score_moving_averages(price: float, ind: IndicatorSeries) -> float:
    sma20, sma50 = ind.sma20[-1], ind.sma50[-1]
    ema9, ema20 = ind.ema9[-1], ind.ema20[-1]

    score = 50
    if price > sma20:
        score += 15
    if price > sma50:
        score += 15
    if price > ema9:
        score += 10
    if price > ema20:
        score += 10
    if sma20 > sma50:
        score += 15
    if ema9 > ema20:
        score += 15
    if sma20 > ema20:
        score += 10
    if _slope(ind.sma20[-5:]) > 0:
        score += 10
    if _slope(ind.ema9[-5:]) > 0:
        score += 10
    return _clamp(score)


def score_rsi(rsi: float) -> float:
    if np.isnan(rsi):
        return 50.0
    if rsi > 70:
        return 20.0  # overbought
    if rsi > 60:
        return 60.0
    if rsi > 50:
        return 70.0
    if rsi > 40:
        return 50.0
    if rsi > 30:
        return 30.0
    return 10.0


def score_macd(ind: IndicatorSeries) -> float:
    macd, signal, hist = ind.macd.macd[-1], ind.macd.signal[-1], ind.macd.histogram[-1]
    if np.isnan(macd):
        return 50.0

    score = 50
    if not np.isnan(signal) and macd > signal:
        score += 20
    if macd > 0:
        score += 15
    if not np.isnan(hist) and hist > 0:
        score += 15
    if _slope(ind.macd.macd[-3:]) > 0:
        score += 10
    return _clamp(score)


def score_volume(volume_ratio: list[float]) -> float:
    latest = volume_ratio[-1]
    score = 50
    if latest > 1.5:
        score += 20
    elif latest > 1.2:
        score += 15
    elif latest > 1.0:
        score += 10
    if _slope(volume_ratio[-5:]) > 0:
        score += 15
    return _clamp(score)


def score_price_action(prices, highs=None, lows=None) -> float:
    p = np.asarray(prices, dtype=float)
    if len(p) < 3:
        return 50.0

    recent_highs = np.asarray(highs if highs is not None else p, dtype=float)[-5:]
    recent_lows = np.asarray(lows if lows is not None else p, dtype=float)[-5:]
    recent = p[-5:]

    score = 50
    if np.sum(np.diff(recent_highs) > 0) >= 3:
        score += 20
    if np.sum(np.diff(recent_lows) > 0) >= 3:
        score += 20

    change = (recent[-1] - recent[0]) / recent[0]
    if change > 0.05:
        score += 15
    elif change > 0.02:
        score += 10
    elif change < -0.05:
        score -= 20
    return _clamp(score)


def score_trend_strength(prices) -> float:
    p = np.asarray(prices, dtype=float)
    if len(p) < 10:
        return 50.0

    recent = p[-10:]
    slope, intercept = linear_fit(recent)
    fit = r_squared(recent, slope, intercept)

    score = 50
    if slope > 0 and fit > 0.7:
        score += 30
    elif slope > 0 and fit > 0.5:
        score += 20
    elif slope > 0:
        score += 10
    elif slope < -0.1:
        score -= 20
    return _clamp(score)


def _signals(breakdown: BullishnessBreakdown) -> BullishnessSignals:
    signals = BullishnessSignals()
    for field, bullish, bearish, neutral in SIGNAL_TEXT:
        value = getattr(breakdown, field)
        if value > 70:
            signals.bullish.append(bullish)
        elif value < 30:
            signals.bearish.append(bearish)
        else:
            signals.neutral.append(neutral)
    return signals


def calculate_bullishness_score(prices, indicators: IndicatorSeries, highs=None, lows=None) -> BullishnessScore:
    """
    Score the latest bar from 0 (bearish) to 100 (bullish).

    Args:
        prices: Closing prices in chronological order
        indicators: Indicator arrays for the same prices
        highs: Optional bar highs for the higher-highs count
        lows: Optional bar lows for the higher-lows count
    """
    p = np.asarray(prices, dtype=float)
    if len(p) == 0:
        raise ValueError("Bullishness score needs at least one price")

    breakdown = BullishnessBreakdown(
        moving_averages=score_moving_averages(float(p[-1]), indicators),
        rsi=score_rsi(indicators.rsi[-1]),
        macd=score_macd(indicators),
        volume_analysis=score_volume(indicators.volume_ratio),
        price_action=score_price_action(p, highs, lows),
        trend_strength=score_trend_strength(p),
    )

    technical = round(sum(getattr(breakdown, name) * w for name, w in TECHNICAL_WEIGHTS.items()))
    momentum = round((breakdown.rsi + breakdown.macd) / 2)
    volume = breakdown.volume_analysis
    trend = round((breakdown.moving_averages + breakdown.trend_strength) / 2)
    overall = round(0.4 * technical + 0.25 * momentum + 0.20 * volume + 0.15 * trend)

    score = BullishnessScore(
        overall=_clamp(overall),
        technical=_clamp(technical),
        momentum=_clamp(momentum),
        volume=_clamp(volume),
        trend=_clamp(trend),
        breakdown=breakdown,
        signals=_signals(breakdown),
    )
    logger.debug(f"Bullishness {score.overall} (technical {score.technical}, momentum {score.momentum})")
    return score
