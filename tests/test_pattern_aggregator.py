"""Unit tests for pattern filtering, deduplication and ranking."""

import pytest

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.technicals import DetectedPattern, PatternStrength, PatternType, SignalDirection
from services.pattern_aggregator import (
    aggregate_patterns, deduplicate_patterns, filter_recent_patterns, group_by_family,
    group_by_signal, prioritize_patterns, priority_score,
)


def _pattern(pattern_type=PatternType.ASCENDING_TRIANGLE, index=90, strength=PatternStrength.MODERATE,
             confidence=0.7, signal=SignalDirection.BULLISH) -> DetectedPattern:
    return DetectedPattern(
        pattern_type=pattern_type, index=index, signal=signal, confidence=confidence, strength=strength,
    )


class TestFilterAndDeduplicate:
    """Recency filter and one-per-type reduction."""

    def test_recent_filter(self):
        """Patterns older than the window are dropped."""
        patterns = [_pattern(index=i) for i in (10, 69, 70, 99)]
        kept = filter_recent_patterns(patterns, data_length=100, max_periods_back=30)
        assert [p.index for p in kept] == [70, 99]

    def test_five_candidates_one_type(self):
        """Five triangles of one type collapse to one entry."""
        patterns = [_pattern(index=80 + i) for i in range(5)]
        deduped = deduplicate_patterns(patterns)
        assert len(deduped) == 1
        assert deduped[0].index == 84

    def test_stronger_wins_index_tie(self):
        """At the same index the stronger candidate is kept."""
        weak = _pattern(index=90, strength=PatternStrength.WEAK)
        strong = _pattern(index=90, strength=PatternStrength.STRONG)
        assert deduplicate_patterns([strong, weak])[0].strength == PatternStrength.STRONG
        assert deduplicate_patterns([weak, strong])[0].strength == PatternStrength.STRONG

    def test_types_kept_separately(self):
        """Different pattern types are deduplicated independently."""
        patterns = [
            _pattern(PatternType.DOUBLE_TOP, index=85),
            _pattern(PatternType.DOUBLE_BOTTOM, index=86),
            _pattern(PatternType.DOUBLE_TOP, index=88),
        ]
        assert len(deduplicate_patterns(patterns)) == 2


class TestPrioritize:
    """Priority score and truncation."""

    def test_priority_score_components(self):
        """Recency, strength, confidence, direction and type weight add up."""
        p = _pattern(PatternType.HEAD_AND_SHOULDERS, index=10, strength=PatternStrength.STRONG, confidence=0.8)
        assert priority_score(p) == pytest.approx(10 * 10 + 100 + 0.8 * 50 + 25 + 90)

    def test_unlisted_type_gets_default_weight(self):
        """Types without a weight fall back to 30; neutral signals get no bonus."""
        p = _pattern(PatternType.VOLUME_SPIKE, index=0, strength=PatternStrength.WEAK,
                     confidence=0.0, signal=SignalDirection.NEUTRAL)
        assert priority_score(p) == pytest.approx(10 + 30)

    def test_recency_dominates(self):
        """A newer weak pattern outranks an older strong one several bars back."""
        old = _pattern(PatternType.DOUBLE_TOP, index=70, strength=PatternStrength.VERY_STRONG)
        new = _pattern(PatternType.BULL_FLAG, index=95, strength=PatternStrength.WEAK)
        assert prioritize_patterns([old, new])[0] is new

    def test_aggregate_caps_output(self):
        """Output never exceeds max_patterns."""
        types = list(PatternType)[:12]
        patterns = [_pattern(t, index=80 + i) for i, t in enumerate(types)]
        result = aggregate_patterns(patterns, data_length=100, max_patterns=5)
        assert len(result) == 5
        scores = [priority_score(p) for p in result]
        assert scores == sorted(scores, reverse=True)


class TestGrouping:
    """Family and signal grouping."""

    def test_group_by_family(self):
        """Each family lands in its own bucket."""
        groups = group_by_family([
            _pattern(PatternType.ASCENDING_TRIANGLE),
            _pattern(PatternType.BEAR_FLAG, signal=SignalDirection.BEARISH),
            _pattern(PatternType.RISING_TRENDLINE),
        ])
        assert len(groups.triangles) == 1
        assert len(groups.flags) == 1
        assert len(groups.trendlines) == 1
        assert groups.wedges == []

    def test_group_by_signal(self):
        """Every direction has a bucket, even when empty."""
        grouped = group_by_signal([_pattern(), _pattern(signal=SignalDirection.BEARISH)])
        assert len(grouped[SignalDirection.BULLISH]) == 1
        assert len(grouped[SignalDirection.BEARISH]) == 1
        assert grouped[SignalDirection.NEUTRAL] == []
