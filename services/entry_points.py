import logging
from datetime import datetime

import numpy as np

from models.technicals import ConfidenceTier, EntryPoint, SignalDirection

logger = logging.getLogger(__name__)

# rule points
GOLDEN_CROSS = 40
RSI_RECOVERY = 30
RSI_MOMENTUM = 20
ABOVE_AVERAGES = 25
FRESH_BREAK = 10

MIN_SCORE = 20
RSI_OVERSOLD = 30
RSI_MOMENTUM_BAND = (45, 55)
RSI_RISING_BARS = 3

TIER_ORDER = {ConfidenceTier.HIGH: 0, ConfidenceTier.MEDIUM: 1, ConfidenceTier.LOW: 2}


def confidence_tier(confidence: float) -> ConfidenceTier:
    if confidence >= 0.6:
        return ConfidenceTier.HIGH
    if confidence >= 0.4:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


def _rsi_rising(rsi: np.ndarray, i: int, bars: int) -> bool:
    if i < bars:
        return False
    window = rsi[i - bars:i + 1]
    return bool(np.all(np.diff(window) > 0))


def identify_entry_points(
    timestamps: list[datetime],
    prices,
    fast_ma,
    slow_ma,
    rsi,
    slow_period: int = 50,
    max_entries: int = 15,
) -> list[EntryPoint]:
    """
    Score each bar against the long-entry rules and keep the ones scoring above 20.

    Entries are ordered high tier first; within a tier they stay in bar order.
    """
    p = np.asarray(prices, dtype=float)
    fast = np.asarray(fast_ma, dtype=float)
    slow = np.asarray(slow_ma, dtype=float)
    r = np.asarray(rsi, dtype=float)
    n = len(p)
    if not (len(timestamps) == len(fast) == len(slow) == len(r) == n):
        raise ValueError("timestamps, prices, averages and rsi must have equal length")

    entries: list[EntryPoint] = []
    for i in range(max(1, slow_period - 1), n):
        score = 0
        reasons: list[str] = []

        if fast[i - 1] <= slow[i - 1] and fast[i] > slow[i]:
            score += GOLDEN_CROSS
            reasons.append("Golden cross")

        if r[i - 1] < RSI_OVERSOLD <= r[i]:
            score += RSI_RECOVERY
            reasons.append("RSI recovering from oversold")

        low, high = RSI_MOMENTUM_BAND
        if low <= r[i] <= high and _rsi_rising(r, i, RSI_RISING_BARS):
            score += RSI_MOMENTUM
            reasons.append("Sustained bullish RSI momentum")

        if p[i] > fast[i] and p[i] > slow[i]:
            score += ABOVE_AVERAGES
            reasons.append("Price above both moving averages")
            if not (p[i - 1] > fast[i - 1] and p[i - 1] > slow[i - 1]):
                score += FRESH_BREAK
                reasons.append("fresh breakout")

        if score <= MIN_SCORE:
            continue

        confidence = min(1.0, score / 100)
        entries.append(EntryPoint(
            index=i,
            timestamp=timestamps[i],
            price=float(p[i]),
            reason=", ".join(reasons),
            confidence=confidence,
            tier=confidence_tier(confidence),
            signal=SignalDirection.BULLISH,
        ))

    # sorted() is stable, so bar order survives within a tier
    ranked = sorted(entries, key=lambda e: TIER_ORDER[e.tier])
    logger.debug(f"{len(entries)} bars qualified as entries, keeping {min(len(ranked), max_entries)}")
    return ranked[:max_entries]
