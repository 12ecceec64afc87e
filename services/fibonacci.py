import numpy as np
import logging

from models.technicals import FibonacciLevels, TrendDirection
from services.swing_detector import find_swings

logger = logging.getLogger(__name__)

FIB_RATIOS = {
    "level_0": 0.0,
    "level_236": 0.236,
    "level_382": 0.382,
    "level_500": 0.5,
    "level_618": 0.618,
    "level_764": 0.764,
    "level_786": 0.786,
    "level_1000": 1.0,
}

UPTREND_POSITION = 0.6
DOWNTREND_POSITION = 0.4


def calculate_fibonacci_levels(
    prices, lookback: int = 100, swing_window: int = 5,
) -> FibonacciLevels:
    """
    Retracement levels between the dominant swing high and swing low of the
    recent window. Levels run from the high (0%) down to the low (100%).
    """
    arr = np.asarray(prices, dtype=float)
    if len(arr) == 0:
        raise ValueError("Cannot compute Fibonacci levels on an empty series")

    recent = arr[-lookback:]
    highs, lows = find_swings(recent, swing_window)

    swing_high = max(p.price for p in highs) if highs else float(recent.max())
    swing_low = min(p.price for p in lows) if lows else float(recent.min())
    if swing_high < swing_low:
        swing_high, swing_low = swing_low, swing_high

    span = swing_high - swing_low
    current = float(recent[-1])
    if span == 0:
        trend = TrendDirection.SIDEWAYS
    else:
        position = (current - swing_low) / span
        if position > UPTREND_POSITION:
            trend = TrendDirection.UPTREND
        elif position < DOWNTREND_POSITION:
            trend = TrendDirection.DOWNTREND
        else:
            trend = TrendDirection.SIDEWAYS

    levels = {name: swing_high - ratio * span for name, ratio in FIB_RATIOS.items()}
    logger.debug(f"Fibonacci range {swing_low:.4f}-{swing_high:.4f}, trend {trend.value}")

    return FibonacciLevels(
        **levels,
        swing_high=swing_high,
        swing_low=swing_low,
        trend=trend,
    )
