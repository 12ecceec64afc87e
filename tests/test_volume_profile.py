"""Unit tests for the volume profile analyzer."""

import numpy as np
import pytest

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.technicals import PatternStrength, PriceLevel, SignalDirection, SpikeSignificance, VolumeTrend
from services.volume_profile import VolumeProfileAnalyzer


class TestRunningTotals:
    """OBV and the accumulation/distribution line."""

    def test_on_balance_volume(self):
        """Up bars add volume, down bars subtract, flat bars carry over."""
        obv = VolumeProfileAnalyzer.on_balance_volume([10, 11, 10, 10, 12], [100, 200, 50, 70, 30])
        assert obv == pytest.approx([0, 200, 150, 150, 180])

    def test_accumulation_distribution(self):
        """Closes at the high add full volume, at the low subtract it."""
        ad = VolumeProfileAnalyzer.accumulation_distribution(
            prices=[12, 10, 11], volumes=[100, 100, 100], highs=[12, 12, 12], lows=[10, 10, 10],
        )
        assert ad == pytest.approx([100, 0, 0])

    def test_accumulation_without_range(self):
        """Bars with high equal to low, or no ranges at all, contribute nothing."""
        assert VolumeProfileAnalyzer.accumulation_distribution([5, 6], [10, 10], [5, 6], [5, 6]) == [0, 0]
        assert VolumeProfileAnalyzer.accumulation_distribution([5, 6], [10, 10]) == [0, 0]

    def test_accumulation_skips_missing_range(self):
        """A bar with no high contributes nothing and the line carries over."""
        ad = VolumeProfileAnalyzer.accumulation_distribution(
            prices=[12, 10, 11], volumes=[100, 100, 100], highs=[12, None, 12], lows=[10, 10, 10],
        )
        assert ad == pytest.approx([100, 100, 100])

    def test_on_balance_volume_starts_at_zero(self):
        """The first bar never moves the line, whatever its volume."""
        obv = VolumeProfileAnalyzer.on_balance_volume([10, 9], [5000, 100])
        assert obv == pytest.approx([0, -100])


class TestTrendSpikesDivergence:
    """Volume trend, spikes and price/volume divergence."""

    def test_trend_needs_forty_bars(self):
        """Short histories are stable."""
        assert VolumeProfileAnalyzer.volume_trend([100] * 20 + [500] * 19) == VolumeTrend.STABLE

    def test_trend_increasing_and_decreasing(self):
        """The last 20 bars against the 20 before."""
        assert VolumeProfileAnalyzer.volume_trend([100] * 20 + [150] * 20) == VolumeTrend.INCREASING
        assert VolumeProfileAnalyzer.volume_trend([150] * 20 + [100] * 20) == VolumeTrend.DECREASING
        assert VolumeProfileAnalyzer.volume_trend([100] * 20 + [105] * 20) == VolumeTrend.STABLE

    def test_spike_significance(self):
        """A 4x bar against a flat baseline is a high-significance spike."""
        volumes = np.full(30, 100.0)
        volumes[25] = 400.0
        prices = np.linspace(100, 110, 30)
        spikes = VolumeProfileAnalyzer.volume_spikes(prices, volumes)
        assert [s.index for s in spikes] == [25]
        # the spike is part of its own 20-bar average
        assert spikes[0].volume_ratio == pytest.approx(400 / 115)
        assert spikes[0].significance == SpikeSignificance.HIGH
        assert spikes[0].price_change > 0

    def test_no_spikes_on_short_series(self):
        """The 20-bar baseline needs history first."""
        assert VolumeProfileAnalyzer.volume_spikes(np.ones(20), np.ones(20)) == []

    def test_bearish_divergence(self):
        """Rising prices on falling volume."""
        n = 40
        prices = np.linspace(100, 130, n)
        volumes = np.linspace(2000, 500, n)
        divergences = VolumeProfileAnalyzer.volume_divergences(prices, volumes)
        assert divergences
        assert len(divergences) <= 5
        assert all(d.signal == SignalDirection.BEARISH for d in divergences)

    def test_bullish_divergence(self):
        """Falling prices on rising volume."""
        n = 40
        prices = np.linspace(130, 100, n)
        volumes = np.linspace(500, 2000, n)
        divergences = VolumeProfileAnalyzer.volume_divergences(prices, volumes)
        assert divergences
        assert all(d.signal == SignalDirection.BULLISH for d in divergences)


class TestProfile:
    """Price histogram, point of control and value area."""

    PRICES = [100.0, 101.0, 102.0, 103.0, 104.0, 102.0]
    VOLUMES = [10.0, 20.0, 500.0, 30.0, 10.0, 400.0]

    def test_point_of_control(self):
        """The bucket with the most volume is the POC."""
        profile = VolumeProfileAnalyzer.volume_profile(self.PRICES, self.VOLUMES)
        assert profile.point_of_control.price == pytest.approx(102.0)
        assert profile.point_of_control.volume == pytest.approx(900.0)

    def test_levels_sorted_and_percentages(self):
        """Levels are ordered by volume and their shares sum to 100."""
        profile = VolumeProfileAnalyzer.volume_profile(self.PRICES, self.VOLUMES)
        volumes = [lvl.volume for lvl in profile.price_levels]
        assert volumes == sorted(volumes, reverse=True)
        assert sum(lvl.volume_percent for lvl in profile.price_levels) == pytest.approx(100.0)

    def test_value_area_is_narrowest_range(self):
        """A single dominant bucket holding 70% is the whole value area."""
        profile = VolumeProfileAnalyzer.volume_profile(self.PRICES, self.VOLUMES)
        va = profile.value_area
        assert va.low == pytest.approx(102.0)
        assert va.high == pytest.approx(102.0)
        assert va.volume_percent >= 70.0

    def test_value_area_spans_contiguous_buckets(self):
        """When no bucket dominates the range widens around the heavy side."""
        prices = [100.0, 101.0, 102.0, 103.0, 104.0]
        volumes = [5.0, 40.0, 40.0, 10.0, 5.0]
        profile = VolumeProfileAnalyzer.volume_profile(prices, volumes)
        assert profile.value_area.low == pytest.approx(101.0)
        assert profile.value_area.high == pytest.approx(102.0)
        assert profile.value_area.volume == pytest.approx(80.0)

    def test_value_area_prefers_tight_price_span(self):
        """Four tightly packed buckets beat three spread over a wide gap."""
        levels = [
            PriceLevel(price=50.0, volume=30.0, volume_percent=30.0),
            PriceLevel(price=100.0, volume=40.0, volume_percent=40.0),
            PriceLevel(price=100.1, volume=15.0, volume_percent=15.0),
            PriceLevel(price=100.2, volume=15.0, volume_percent=15.0),
        ]
        va = VolumeProfileAnalyzer.value_area(levels, total=100.0)
        assert va.low == pytest.approx(100.0)
        assert va.high == pytest.approx(100.2)
        assert va.volume == pytest.approx(70.0)

    def test_value_area_tie_takes_more_volume(self):
        """Equal spans are decided by the volume they hold."""
        levels = [
            PriceLevel(price=100.0, volume=20.0, volume_percent=19.0),
            PriceLevel(price=101.0, volume=60.0, volume_percent=57.2),
            PriceLevel(price=102.0, volume=25.0, volume_percent=23.8),
        ]
        va = VolumeProfileAnalyzer.value_area(levels, total=105.0)
        assert va.low == pytest.approx(101.0)
        assert va.high == pytest.approx(102.0)
        assert va.volume == pytest.approx(85.0)

    def test_bucket_reports_mean_traded_price(self):
        """A bucket is priced at the mean of the closes that fell in it."""
        profile = VolumeProfileAnalyzer.volume_profile([100.02, 100.04, 100.0], [10.0, 10.0, 10.0])
        assert len(profile.price_levels) == 1
        assert profile.point_of_control.price == pytest.approx(100.02)
        assert profile.value_area.low == pytest.approx(100.02)
        assert profile.support_levels == []
        assert profile.resistance_levels[0].touches == 3


    def test_volume_at_price_strength(self):
        """Strength is the bucket's volume relative to the POC."""
        profile = VolumeProfileAnalyzer.volume_profile(self.PRICES, self.VOLUMES)
        strengths = {v.volume: v.strength for v in profile.volume_at_price}
        assert strengths[900.0] == PatternStrength.VERY_STRONG
        assert strengths[10.0] == PatternStrength.WEAK

    def test_support_touches(self):
        """Support is high-volume below price; touches count bars in the bucket."""
        prices = [100.0, 100.0, 100.0, 105.0, 106.0, 107.0, 108.0, 109.0, 110.0, 111.0, 103.0]
        volumes = [300.0, 300.0, 300.0] + [10.0] * 8
        profile = VolumeProfileAnalyzer.volume_profile(prices, volumes)
        assert profile.support_levels
        top = profile.support_levels[0]
        assert top.price == pytest.approx(100.0)
        assert top.touches == 3
        assert all(r.price > 103.0 for r in profile.resistance_levels)


class TestAnalyzeVolume:
    """The combined analysis."""

    def test_full_analysis(self):
        """Every part of the analysis is aligned with the input."""
        rng = np.random.default_rng(4)
        prices = 100 * np.exp(np.cumsum(rng.normal(0, 0.01, 120)))
        volumes = rng.uniform(1000, 5000, 120)
        analysis = VolumeProfileAnalyzer.analyze_volume(prices, volumes, highs=prices * 1.01, lows=prices * 0.99)
        assert len(analysis.on_balance_volume) == 120
        assert len(analysis.accumulation_distribution) == 120
        assert len(analysis.volume_spikes) <= 10
        assert len(analysis.volume_divergences) <= 5
        va = analysis.volume_profile.value_area
        assert va.low <= va.high
        assert va.volume_percent >= 70.0

    def test_length_mismatch(self):
        """Misaligned volumes are rejected."""
        with pytest.raises(ValueError):
            VolumeProfileAnalyzer.analyze_volume([1.0, 2.0], [1.0])
