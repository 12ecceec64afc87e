"""
Confirmation predicates shared by the pattern detectors.

Each predicate returns a ConfirmationSignal tagged with the kind of evidence it
checked, so detectors can combine volume, RSI and moving-average checks into a
confidence score the same way.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Union

import numpy as np

from models.technicals import PatternStrength


class ConfirmationKind(str, Enum):
    VOLUME = "volume"
    RSI = "rsi"
    MOVING_AVERAGE = "moving_average"
    CONTEXT = "context"


@dataclass(frozen=True)
class ConfirmationSignal:
    kind: ConfirmationKind
    satisfied: bool
    magnitude: float = 0.0

    def __bool__(self) -> bool:
        return self.satisfied


# ---------- Volume ----------

def trailing_volume_average(volumes, index: int, lookback: int = 10) -> float:
    """Mean volume of the `lookback` bars before `index` (the bar's own volume when none)."""
    window = np.asarray(volumes[max(0, index - lookback):index], dtype=float)
    if len(window) == 0:
        return float(volumes[index])
    return float(window.mean())


def volume_surge(volumes, index: int, factor: float = 1.2, lookback: int = 10) -> ConfirmationSignal:
    avg = trailing_volume_average(volumes, index, lookback)
    current = float(volumes[index])
    ratio = current / avg if avg > 0 else 0.0
    return ConfirmationSignal(ConfirmationKind.VOLUME, avg > 0 and current > factor * avg, ratio)


def volume_dry_up(volumes, index: int, factor: float = 0.7, lookback: int = 10) -> ConfirmationSignal:
    avg = trailing_volume_average(volumes, index, lookback)
    current = float(volumes[index])
    ratio = current / avg if avg > 0 else 0.0
    return ConfirmationSignal(ConfirmationKind.VOLUME, avg > 0 and current < factor * avg, ratio)


def volume_relative(value: float, reference: float, factor: float = 1.0, above: bool = True) -> ConfirmationSignal:
    """Compare one volume reading to `factor` times another."""
    ratio = value / reference if reference > 0 else 0.0
    satisfied = value > factor * reference if above else value < factor * reference
    return ConfirmationSignal(ConfirmationKind.VOLUME, bool(satisfied), ratio)


# ---------- RSI ----------

def rsi_within(rsi, index: int, low: float, high: float) -> ConfirmationSignal:
    value = float(rsi[index])
    return ConfirmationSignal(ConfirmationKind.RSI, low < value < high, value)


def rsi_above(rsi, index: int, threshold: float) -> ConfirmationSignal:
    value = float(rsi[index])
    return ConfirmationSignal(ConfirmationKind.RSI, value > threshold, value)


def rsi_below(rsi, index: int, threshold: float) -> ConfirmationSignal:
    value = float(rsi[index])
    return ConfirmationSignal(ConfirmationKind.RSI, value < threshold, value)


# ---------- Moving averages ----------

def price_above_averages(prices, index: int, *averages) -> ConfirmationSignal:
    price = float(prices[index])
    levels = [float(ma[index]) for ma in averages]
    gap = min((price - lvl) / lvl for lvl in levels) if levels else 0.0
    return ConfirmationSignal(ConfirmationKind.MOVING_AVERAGE, all(price > lvl for lvl in levels), gap)


def price_below_averages(prices, index: int, *averages) -> ConfirmationSignal:
    price = float(prices[index])
    levels = [float(ma[index]) for ma in averages]
    gap = min((lvl - price) / lvl for lvl in levels) if levels else 0.0
    return ConfirmationSignal(ConfirmationKind.MOVING_AVERAGE, all(price < lvl for lvl in levels), gap)


def price_near_average(prices, index: int, average, tolerance: float = 0.05) -> ConfirmationSignal:
    price = float(prices[index])
    level = float(average[index])
    distance = abs(price - level) / level if level else float("inf")
    return ConfirmationSignal(ConfirmationKind.MOVING_AVERAGE, distance <= tolerance, distance)


# ---------- Scoring ----------

def accumulate_confidence(
    base: float,
    signals: Sequence[ConfirmationSignal],
    increments: Union[float, Sequence[float]] = 0.1,
) -> float:
    """Base confidence plus an increment for each satisfied signal, capped at 1."""
    if isinstance(increments, (int, float)):
        increments = [increments] * len(signals)
    total = base + sum(inc for sig, inc in zip(signals, increments) if sig.satisfied)
    return float(min(1.0, max(0.0, total)))


def strength_for(
    confidence: float,
    moderate: float,
    strong: Optional[float] = None,
    very_strong: Optional[float] = None,
) -> PatternStrength:
    if very_strong is not None and confidence >= very_strong:
        return PatternStrength.VERY_STRONG
    if strong is not None and confidence >= strong:
        return PatternStrength.STRONG
    if confidence >= moderate:
        return PatternStrength.MODERATE
    return PatternStrength.WEAK


def risk_reward_ratio(entry: float, stop: float, target: float, long: bool = True) -> float:
    """
    Reward over risk for a trade at `entry`. A zero or negative risk, or a
    target on the wrong side, gives 0.
    """
    if long:
        risk, reward = entry - stop, target - entry
    else:
        risk, reward = stop - entry, entry - target
    if risk <= 0:
        return 0.0
    return float(max(0.0, reward / risk))
