"""Small numeric helpers shared by the analysis services."""

import numpy as np
import pandas as pd

from models.market_data import PricePoint


def points_to_dataframe(points: list[PricePoint]) -> pd.DataFrame:
    """Convert price points to a DataFrame with timestamp, price, volume, open, high, low, close.

    Missing OHLC fields fall back to the point's price and missing volume to 0,
    so downstream code can always read every column.
    """
    df = pd.DataFrame([p.model_dump() for p in points])
    df["volume"] = df["volume"].fillna(0.0).astype(float)
    for col in ("open", "high", "low", "close"):
        df[col] = df[col].fillna(df["price"]).astype(float)
    df["price"] = df["price"].astype(float)
    return df


def has_ohlc(points: list[PricePoint]) -> bool:
    """True when every point carries high and low."""
    return all(p.high is not None and p.low is not None for p in points)


def linear_fit(values) -> tuple[float, float]:
    """Least-squares slope and intercept over x = 0..n-1."""
    y = np.asarray(values, dtype=float)
    if len(y) < 2:
        return 0.0, float(y[0]) if len(y) else 0.0
    x = np.arange(len(y), dtype=float)
    slope, intercept = np.polyfit(x, y, 1)
    return float(slope), float(intercept)


def r_squared(values, slope: float, intercept: float) -> float:
    """Coefficient of determination of a line fitted over x = 0..n-1; 0 for flat input."""
    y = np.asarray(values, dtype=float)
    x = np.arange(len(y), dtype=float)
    predicted = slope * x + intercept
    ss_res = float(np.sum((y - predicted) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    if ss_tot == 0:
        return 0.0
    return 1 - ss_res / ss_tot