"""
Volume-based analysis: price/volume histogram, value area, OBV, A/D line,
spikes and price/volume divergence.
"""

import logging
from collections import Counter, defaultdict
from typing import Optional

import numpy as np
import pandas as pd
import pandas_ta as ta

from models.technicals import (
    PatternStrength, PointOfControl, PriceLevel, SignalDirection, SpikeSignificance,
    ValueArea, VolumeAnalysis, VolumeAtPrice, VolumeDivergence, VolumeLevel, VolumeProfile,
    VolumeSpike, VolumeTrend,
)
from services.indicator_engine import IndicatorEngine

logger = logging.getLogger(__name__)

BUCKET_FRACTION = 0.001  # of the last price
HIGH_VOLUME_SHARE = 0.2

SPIKE_PERIOD = 20
SPIKE_RATIO = 1.5
SPIKE_MEDIUM = 2.0
SPIKE_HIGH = 3.0
MAX_SPIKES = 10

DIVERGENCE_LOOKBACK = 10
DIVERGENCE_PRICE_MOVE = 0.02
DIVERGENCE_VOLUME_MOVE = 0.10
MAX_DIVERGENCES = 5

TREND_WINDOW = 20
TREND_THRESHOLD = 0.10

STRENGTH_BANDS = [
    (0.8, PatternStrength.VERY_STRONG),
    (0.6, PatternStrength.STRONG),
    (0.4, PatternStrength.MODERATE),
]


class VolumeProfileAnalyzer:
    """Stateless volume analysis over aligned price/volume arrays."""

    @staticmethod
    def analyze_volume(
        prices,
        volumes,
        highs=None,
        lows=None,
        value_area_percent: float = 0.70,
    ) -> VolumeAnalysis:
        """
        Args:
            prices: Closing prices in chronological order
            volumes: Volumes aligned with prices
            highs: Optional bar highs for the A/D line
            lows: Optional bar lows for the A/D line
            value_area_percent: Share of total volume the value area must hold

        Raises:
            ValueError: on empty input or mismatched lengths
        """
        p = np.asarray(prices, dtype=float)
        v = np.asarray(volumes, dtype=float)
        if len(p) == 0:
            raise ValueError("Volume analysis needs at least one price")
        if len(v) != len(p):
            raise ValueError(f"volumes has length {len(v)}, expected {len(p)}")

        analysis = VolumeAnalysis(
            volume_trend=VolumeProfileAnalyzer.volume_trend(v),
            volume_spikes=VolumeProfileAnalyzer.volume_spikes(p, v),
            volume_divergences=VolumeProfileAnalyzer.volume_divergences(p, v),
            accumulation_distribution=VolumeProfileAnalyzer.accumulation_distribution(p, v, highs, lows),
            on_balance_volume=VolumeProfileAnalyzer.on_balance_volume(p, v),
            volume_profile=VolumeProfileAnalyzer.volume_profile(p, v, value_area_percent),
        )
        logger.debug(
            f"Volume analysis: trend={analysis.volume_trend.value}, "
            f"{len(analysis.volume_spikes)} spikes, {len(analysis.volume_divergences)} divergences"
        )
        return analysis

    # ---------- Trend, spikes, divergence ----------

    @staticmethod
    def volume_trend(volumes) -> VolumeTrend:
        """Mean of the last 20 bars against the 20 before them."""
        v = np.asarray(volumes, dtype=float)
        if len(v) < 2 * TREND_WINDOW:
            return VolumeTrend.STABLE
        recent = v[-TREND_WINDOW:].mean()
        previous = v[-2 * TREND_WINDOW:-TREND_WINDOW].mean()
        if previous == 0:
            return VolumeTrend.STABLE
        change = (recent - previous) / previous
        if change > TREND_THRESHOLD:
            return VolumeTrend.INCREASING
        if change < -TREND_THRESHOLD:
            return VolumeTrend.DECREASING
        return VolumeTrend.STABLE

    @staticmethod
    def volume_spikes(prices, volumes) -> list[VolumeSpike]:
        p = np.asarray(prices, dtype=float)
        v = np.asarray(volumes, dtype=float)
        if len(v) <= SPIKE_PERIOD:
            return []

        avg = IndicatorEngine.volume_sma(v, SPIKE_PERIOD)
        spikes: list[VolumeSpike] = []
        for i in range(SPIKE_PERIOD, len(v)):
            ratio = v[i] / avg[i] if avg[i] > 0 else 1.0
            if ratio < SPIKE_RATIO:
                continue
            if ratio > SPIKE_HIGH:
                significance = SpikeSignificance.HIGH
            elif ratio > SPIKE_MEDIUM:
                significance = SpikeSignificance.MEDIUM
            else:
                significance = SpikeSignificance.LOW
            spikes.append(VolumeSpike(
                index=i,
                volume=float(v[i]),
                volume_ratio=float(ratio),
                price_change=float((p[i] - p[i - 1]) / p[i - 1]),
                significance=significance,
            ))
        return spikes[-MAX_SPIKES:]

    @staticmethod
    def volume_divergences(prices, volumes) -> list[VolumeDivergence]:
        """Price and volume trending in opposite directions over a 10-bar window."""
        p = np.asarray(prices, dtype=float)
        v = np.asarray(volumes, dtype=float)
        lb = DIVERGENCE_LOOKBACK
        divergences: list[VolumeDivergence] = []

        for i in range(lb, len(p) - lb):
            start_price, start_volume = p[i - lb], v[i - lb]
            if start_volume <= 0:
                continue
            price_trend = (p[i] - start_price) / start_price
            volume_trend = (v[i] - start_volume) / start_volume
            strength = abs(price_trend) * abs(volume_trend) * 100

            if price_trend > DIVERGENCE_PRICE_MOVE and volume_trend < -DIVERGENCE_VOLUME_MOVE:
                divergences.append(VolumeDivergence(
                    index=i,
                    signal=SignalDirection.BEARISH,
                    strength=float(strength),
                    description="Price rising on falling volume (bearish divergence)",
                ))
            elif price_trend < -DIVERGENCE_PRICE_MOVE and volume_trend > DIVERGENCE_VOLUME_MOVE:
                divergences.append(VolumeDivergence(
                    index=i,
                    signal=SignalDirection.BULLISH,
                    strength=float(strength),
                    description="Price falling on rising volume (bullish divergence)",
                ))
        return divergences[-MAX_DIVERGENCES:]

    # ---------- Running totals ----------

    @staticmethod
    def on_balance_volume(prices, volumes) -> list[float]:
        """OBV anchored at 0 on the first bar."""
        close = pd.Series(prices, dtype=float)
        obv = ta.obv(close, pd.Series(volumes, dtype=float))
        if obv is None or obv.empty:
            return [0.0] * len(close)
        # pandas_ta seeds the line with the first bar's volume
        obv = (obv - obv.iloc[0]).fillna(0.0)
        return [float(x) for x in obv]

    @staticmethod
    def accumulation_distribution(prices, volumes, highs=None, lows=None) -> list[float]:
        """A/D line; bars without a usable high/low range contribute nothing."""
        close = pd.Series(prices, dtype=float)
        if highs is None or lows is None:
            return [0.0] * len(close)

        high = pd.Series(highs, dtype=float)
        low = pd.Series(lows, dtype=float)
        volume = pd.Series(volumes, dtype=float)
        # a symmetric range around the close gives a zero money-flow multiplier
        flat = high.isna() | low.isna() | (high - low <= 0)
        high = high.mask(flat, close + 1.0)
        low = low.mask(flat, close - 1.0)

        ad = ta.ad(high, low, close, volume)
        if ad is None or ad.empty:
            return [0.0] * len(close)
        return [float(x) for x in ad.fillna(0.0)]

    # ---------- Profile ----------

    @staticmethod
    def volume_profile(prices, volumes, value_area_percent: float = 0.70) -> VolumeProfile:
        p = np.asarray(prices, dtype=float)
        v = np.asarray(volumes, dtype=float)
        current = float(p[-1])
        bucket = current * BUCKET_FRACTION
        if bucket <= 0:
            raise ValueError("Last price must be positive to bucket the volume profile")

        volume_by_bucket: dict[int, float] = defaultdict(float)
        traded_by_bucket: dict[int, list[float]] = defaultdict(list)
        for price, volume in zip(p, v):
            key = int(round(price / bucket))
            volume_by_bucket[key] += float(volume)
            traded_by_bucket[key].append(float(price))

        # each bucket is reported at the mean price actually traded in it
        by_price: dict[float, float] = {}
        touches: Counter = Counter()
        for key, volume in volume_by_bucket.items():
            price = float(np.mean(traded_by_bucket[key]))
            by_price[price] = volume
            touches[price] = len(traded_by_bucket[key])

        total = sum(by_price.values())
        levels = VolumeProfileAnalyzer._price_levels(by_price, total, current)

        poc = max(levels, key=lambda lvl: lvl.volume)
        max_volume = poc.volume

        return VolumeProfile(
            price_levels=levels,
            value_area=VolumeProfileAnalyzer.value_area(levels, total, value_area_percent),
            point_of_control=PointOfControl(price=poc.price, volume=poc.volume),
            volume_at_price=[
                VolumeAtPrice(price=lvl.price, volume=lvl.volume, strength=_strength(lvl.volume, max_volume))
                for lvl in levels
            ],
            support_levels=_volume_levels([lvl for lvl in levels if lvl.is_support], touches),
            resistance_levels=_volume_levels([lvl for lvl in levels if lvl.is_resistance], touches),
        )

    @staticmethod
    def _price_levels(by_price: dict[float, float], total: float, current: float) -> list[PriceLevel]:
        """Histogram levels ordered by volume, highest first."""
        ranked = sorted(by_price.items(), key=lambda kv: kv[1], reverse=True)
        threshold = ranked[int(len(ranked) * HIGH_VOLUME_SHARE)][1]

        levels = []
        for price, volume in ranked:
            high_volume = volume >= threshold
            levels.append(PriceLevel(
                price=price,
                volume=volume,
                volume_percent=volume / total * 100 if total > 0 else 0.0,
                is_high_volume=high_volume,
                is_support=high_volume and price < current,
                is_resistance=high_volume and price > current,
            ))
        return levels

    @staticmethod
    def value_area(levels: list[PriceLevel], total: float, value_area_percent: float = 0.70) -> ValueArea:
        """
        Narrowest contiguous price range holding `value_area_percent` of the volume.

        Two-pointer sweep over buckets sorted by price, scored by the price span
        between the outer buckets. Among ranges of equal span the one with more
        volume wins.
        """
        ordered = sorted(levels, key=lambda lvl: lvl.price)
        volumes = np.array([lvl.volume for lvl in ordered], dtype=float)
        cumulative = np.concatenate([[0.0], np.cumsum(volumes)])
        target = value_area_percent * total

        best: Optional[tuple[int, int]] = None
        left = 0
        for right in range(len(ordered)):
            # shrink from the left while the range still meets the target
            while left < right and cumulative[right + 1] - cumulative[left + 1] >= target:
                left += 1
            held = cumulative[right + 1] - cumulative[left]
            if held < target:
                continue
            if best is None:
                best = (left, right)
                continue
            span = ordered[right].price - ordered[left].price
            best_span = ordered[best[1]].price - ordered[best[0]].price
            best_held = cumulative[best[1] + 1] - cumulative[best[0]]
            if span < best_span or (span == best_span and held > best_held):
                best = (left, right)

        if best is None:
            best = (0, len(ordered) - 1)
        lo, hi = best
        volume = float(cumulative[hi + 1] - cumulative[lo])
        return ValueArea(
            high=ordered[hi].price,
            low=ordered[lo].price,
            volume=volume,
            volume_percent=volume / total * 100 if total > 0 else 0.0,
        )


def _strength(volume: float, max_volume: float) -> PatternStrength:
    ratio = volume / max_volume if max_volume > 0 else 0.0
    for floor, strength in STRENGTH_BANDS:
        if ratio >= floor:
            return strength
    return PatternStrength.WEAK


def _volume_levels(levels: list[PriceLevel], touches: Counter) -> list[VolumeLevel]:
    result = [
        VolumeLevel(price=lvl.price, volume=lvl.volume, strength=lvl.volume_percent, touches=touches[lvl.price])
        for lvl in levels
    ]
    return sorted(result, key=lambda lvl: lvl.strength, reverse=True)
