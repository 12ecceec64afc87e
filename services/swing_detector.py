"""
Swing high/low identification.

A bar is a swing high (low) when it is strictly greater (less) than every bar
within `window` on both sides. Only bars with a complete window qualify.
"""

import numpy as np
from scipy.signal import argrelextrema

from models.technicals import SwingPoint, SwingKind, Trendline, TrendlineKind


def _swing_indices(values: np.ndarray, comparator, window: int) -> np.ndarray:
    n = len(values)
    if window < 1 or n < window * 2 + 1:
        return np.array([], dtype=int)
    idx = argrelextrema(values, comparator, order=window, mode="clip")[0]
    return idx[(idx >= window) & (idx < n - window)]


def find_swing_highs(values, window: int = 5) -> list[SwingPoint]:
    arr = np.asarray(values, dtype=float)
    return [
        SwingPoint(index=int(i), price=float(arr[i]), kind=SwingKind.HIGH)
        for i in _swing_indices(arr, np.greater, window)
    ]


def find_swing_lows(values, window: int = 5) -> list[SwingPoint]:
    arr = np.asarray(values, dtype=float)
    return [
        SwingPoint(index=int(i), price=float(arr[i]), kind=SwingKind.LOW)
        for i in _swing_indices(arr, np.less, window)
    ]


def find_swings(values, window: int = 5) -> tuple[list[SwingPoint], list[SwingPoint]]:
    """Return (highs, lows), each in index order."""
    return find_swing_highs(values, window), find_swing_lows(values, window)


def identify_trendlines(highs, lows, lookback: int = 30, window: int = 1) -> list[Trendline]:
    """
    Support and resistance lines fitted over the last `lookback` bars.

    Support is the least-squares line through the swing lows of `lows`,
    resistance the one through the swing highs of `highs`. Each line runs from
    the first bar of the window to the last bar of the series and needs at
    least two swings; support comes first when both exist.
    """
    h = np.asarray(highs, dtype=float)
    lo = np.asarray(lows, dtype=float)
    n = len(h)
    start = max(0, n - lookback)

    lines = []
    for kind, swings in (
        (TrendlineKind.SUPPORT, find_swing_lows(lo[start:], window)),
        (TrendlineKind.RESISTANCE, find_swing_highs(h[start:], window)),
    ):
        if len(swings) < 2:
            continue
        x = np.array([s.index for s in swings], dtype=float)
        y = np.array([s.price for s in swings], dtype=float)
        slope, intercept = np.polyfit(x, y, 1)
        last = n - 1 - start
        lines.append(Trendline(
            kind=kind,
            start_index=start,
            start_price=float(intercept),
            end_index=n - 1,
            end_price=float(intercept + slope * last),
            slope=float(slope),
            touches=len(swings),
        ))
    return lines
