"""Tests for the geometric pattern detectors and the detector dispatcher."""

import numpy as np
import pytest

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.technicals import PatternFamily, PatternStrength, PatternType, SignalDirection
from services.detectors.context import PatternContext
from services.detectors.double_patterns import DoublePatternConstants, detect_double_patterns
from services.detectors.head_and_shoulders import detect_head_and_shoulders
from services.indicator_engine import IndicatorEngine
from services.pattern_detector import GEOMETRIC_FAMILIES, PatternDetector


def _with_tents(n: int, peaks: dict[int, float], base: float = 100.0, half_width: int = 3) -> np.ndarray:
    """Flat series with a triangular spike of the given height at each index."""
    prices = np.full(n, base)
    for center, height in peaks.items():
        for d in range(-half_width, half_width + 1):
            prices[center + d] = max(prices[center + d], base + height * (1 - abs(d) / (half_width + 1)))
    return prices


def _context(prices, volumes=None) -> PatternContext:
    volumes = np.full(len(prices), 1000.0) if volumes is None else volumes
    indicators = IndicatorEngine.compute_series(prices, volumes=volumes)
    return PatternContext.build(prices, indicators, volumes=volumes)


def _noisy_market(n: int = 250, seed: int = 11):
    rng = np.random.default_rng(seed)
    t = np.arange(n)
    prices = 100 + 8 * np.sin(t / 9) + 3 * np.sin(t / 3.7) + np.cumsum(rng.normal(0, 0.6, n))
    volumes = rng.uniform(500, 3000, n)
    return prices, volumes, prices * 1.01, prices * 0.99


def _expected_strength(confidence: float) -> PatternStrength:
    if confidence >= 0.8:
        return PatternStrength.STRONG
    if confidence >= 0.7:
        return PatternStrength.MODERATE
    return PatternStrength.WEAK


class TestDoublePatterns:
    """Double top from two equal peaks."""

    PRICES = _with_tents(60, {40: 10.0, 48: 10.0})

    def test_double_top_detected(self):
        """Two equal peaks over a 100 valley form a bearish double top."""
        found = detect_double_patterns(_context(self.PRICES))
        tops = [p for p in found if p.pattern_type == PatternType.DOUBLE_TOP]
        assert tops
        top = tops[0]
        assert top.signal == SignalDirection.BEARISH
        assert top.key_levels["first_peak"] == pytest.approx(110.0)
        assert top.key_levels["second_peak"] == pytest.approx(110.0)
        assert top.key_levels["support"] == pytest.approx(100.0)
        assert top.metadata["start_index"] == 40
        assert top.metadata["end_index"] == 48
        assert top.stop_loss > top.entry_price > top.take_profit

    def test_constants_table_controls_detection(self):
        """Requiring wider peak separation rejects the same shape."""
        strict = DoublePatternConstants(top_min_separation=20)
        found = detect_double_patterns(_context(self.PRICES), strict)
        assert not [p for p in found if p.pattern_type == PatternType.DOUBLE_TOP]

    def test_linear_series_has_no_double_patterns(self):
        """A straight line has no swings to pair."""
        assert detect_double_patterns(_context(np.linspace(100, 160, 60))) == []


class TestHeadAndShoulders:
    """Head and shoulders from three swing highs."""

    def test_head_and_shoulders_detected(self):
        """A taller middle peak between two equal shoulders is bearish."""
        prices = _with_tents(70, {30: 6.0, 40: 12.0, 50: 6.0})
        found = detect_head_and_shoulders(_context(prices))
        patterns = [p for p in found if p.pattern_type == PatternType.HEAD_AND_SHOULDERS]
        assert patterns
        hs = patterns[0]
        assert hs.signal == SignalDirection.BEARISH
        assert hs.key_levels["head"] == pytest.approx(112.0)
        assert hs.key_levels["neckline"] == pytest.approx(106.0 * 0.98)
        assert hs.metadata["head_index"] == 40

    def test_uneven_shoulders_rejected(self):
        """Shoulders more than 5% apart do not qualify."""
        prices = _with_tents(70, {30: 2.0, 40: 20.0, 50: 12.0})
        found = detect_head_and_shoulders(_context(prices))
        assert not [p for p in found if p.pattern_type == PatternType.HEAD_AND_SHOULDERS]


class TestPatternDetector:
    """Dispatcher behaviour and invariants shared by every detector."""

    def test_every_family_obeys_envelope_invariants(self):
        """Confidence, index and risk/reward stay in range on a noisy market."""
        prices, volumes, highs, lows = _noisy_market()
        indicators = IndicatorEngine.compute_series(prices, volumes=volumes, highs=highs, lows=lows)
        detector = PatternDetector(prices, indicators, volumes=volumes, highs=highs, lows=lows)

        for family in PatternFamily:
            for pattern in detector.detect_family(family):
                assert pattern.family == family
                assert 0.0 <= pattern.confidence <= 1.0
                assert 0 <= pattern.index < len(prices)
                assert pattern.risk_reward_ratio is None or pattern.risk_reward_ratio >= 0

    def test_strength_matches_confidence(self):
        """Double and head-and-shoulders strengths follow their confidence cut-offs."""
        prices, volumes, highs, lows = _noisy_market(seed=5)
        indicators = IndicatorEngine.compute_series(prices, volumes=volumes, highs=highs, lows=lows)
        detector = PatternDetector(prices, indicators, volumes=volumes, highs=highs, lows=lows)
        checked = detector.detect_patterns([PatternFamily.DOUBLE, PatternFamily.HEAD_AND_SHOULDERS])
        for pattern in checked:
            assert pattern.strength == _expected_strength(pattern.confidence)

    def test_default_run_is_geometric_only(self):
        """Demand zones and enhanced setups are not part of the default scan."""
        prices, volumes, highs, lows = _noisy_market()
        indicators = IndicatorEngine.compute_series(prices, volumes=volumes, highs=highs, lows=lows)
        detector = PatternDetector(prices, indicators, volumes=volumes, highs=highs, lows=lows)
        for pattern in detector.detect_patterns():
            assert pattern.family in GEOMETRIC_FAMILIES

    def test_single_family_request(self):
        """Only the requested family is scanned."""
        prices = _with_tents(60, {40: 10.0, 48: 10.0})
        indicators = IndicatorEngine.compute_series(prices, volumes=np.full(60, 1000.0))
        detector = PatternDetector(prices, indicators, volumes=np.full(60, 1000.0))
        found = detector.detect_patterns([PatternFamily.DOUBLE])
        assert found
        assert {p.family for p in found} == {PatternFamily.DOUBLE}

    def test_detector_errors_propagate(self):
        """A failing detector is not silently skipped."""
        prices = np.linspace(100, 160, 60)
        indicators = IndicatorEngine.compute_series(prices)
        detector = PatternDetector(prices, indicators)

        def boom(ctx):
            raise RuntimeError("detector failure")

        saved = PatternDetector.detector_map[PatternFamily.TRIANGLE]
        PatternDetector.detector_map[PatternFamily.TRIANGLE] = boom
        try:
            with pytest.raises(RuntimeError):
                detector.detect_patterns()
        finally:
            PatternDetector.detector_map[PatternFamily.TRIANGLE] = saved
