"""Unit tests for the shared confirmation predicates and scoring helpers."""

import numpy as np
import pytest

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.technicals import PatternStrength
from services.confirmation import (
    ConfirmationKind, ConfirmationSignal, accumulate_confidence, price_above_averages,
    price_below_averages, price_near_average, risk_reward_ratio, rsi_within, strength_for,
    trailing_volume_average, volume_dry_up, volume_relative, volume_surge,
)


class TestVolumePredicates:
    """Volume checks against the trailing average."""

    def test_trailing_average_excludes_current_bar(self):
        """The bar being checked is not part of its own baseline."""
        volumes = [100.0] * 10 + [500.0]
        assert trailing_volume_average(volumes, 10) == pytest.approx(100.0)

    def test_trailing_average_at_first_bar(self):
        """With no history the bar's own volume is the baseline."""
        assert trailing_volume_average([250.0, 1.0], 0) == pytest.approx(250.0)

    def test_surge(self):
        """Volume 5x the average is a surge; the magnitude is the ratio."""
        signal = volume_surge([100.0] * 10 + [500.0], 10)
        assert signal.satisfied
        assert signal.kind == ConfirmationKind.VOLUME
        assert signal.magnitude == pytest.approx(5.0)

    def test_no_surge_without_volume(self):
        """Zero volume history never confirms."""
        assert not volume_surge([0.0] * 11, 10)

    def test_dry_up(self):
        """Volume well under the average is a dry-up."""
        assert volume_dry_up([100.0] * 10 + [50.0], 10)
        assert not volume_dry_up([100.0] * 10 + [90.0], 10)

    def test_relative(self):
        """Direct comparison of two readings."""
        assert volume_relative(150, 100, 1.2)
        assert volume_relative(70, 100, 0.8, above=False)
        assert not volume_relative(90, 100, 0.8, above=False)


class TestRSIAndAverages:
    """RSI bands and moving-average position."""

    def test_rsi_within_is_exclusive(self):
        """Band edges do not count."""
        rsi = [30.0, 50.0, 70.0]
        assert not rsi_within(rsi, 0, 30, 70)
        assert rsi_within(rsi, 1, 30, 70)
        assert not rsi_within(rsi, 2, 30, 70)

    def test_price_above_and_below(self):
        """Price relative to two averages."""
        prices = np.array([110.0])
        fast, slow = np.array([105.0]), np.array([100.0])
        assert price_above_averages(prices, 0, fast, slow)
        assert not price_below_averages(prices, 0, fast, slow)

    def test_price_near_average(self):
        """Within 5% of the average counts as near."""
        assert price_near_average([103.0], 0, [100.0])
        assert not price_near_average([110.0], 0, [100.0])


class TestScoring:
    """Confidence accumulation, strength and risk/reward."""

    def test_accumulate_counts_satisfied_only(self):
        """Each satisfied signal adds its increment."""
        signals = [
            ConfirmationSignal(ConfirmationKind.VOLUME, True),
            ConfirmationSignal(ConfirmationKind.RSI, False),
            ConfirmationSignal(ConfirmationKind.MOVING_AVERAGE, True),
        ]
        assert accumulate_confidence(0.5, signals, 0.1) == pytest.approx(0.7)
        assert accumulate_confidence(0.5, signals, [0.2, 0.3, 0.05]) == pytest.approx(0.75)

    def test_accumulate_is_capped(self):
        """Confidence never exceeds 1."""
        signals = [ConfirmationSignal(ConfirmationKind.VOLUME, True)] * 5
        assert accumulate_confidence(0.9, signals, 0.1) == 1.0

    def test_strength_thresholds(self):
        """Confidence maps onto the tiers a detector defines."""
        assert strength_for(0.85, moderate=0.7, strong=0.8) == PatternStrength.STRONG
        assert strength_for(0.75, moderate=0.7, strong=0.8) == PatternStrength.MODERATE
        assert strength_for(0.5, moderate=0.7, strong=0.8) == PatternStrength.WEAK
        assert strength_for(0.95, moderate=0.7, strong=0.8, very_strong=0.9) == PatternStrength.VERY_STRONG
        assert strength_for(0.95, moderate=0.7) == PatternStrength.MODERATE

    def test_risk_reward_long_and_short(self):
        """Reward over risk for both directions."""
        assert risk_reward_ratio(100, 95, 110) == pytest.approx(2.0)
        assert risk_reward_ratio(100, 105, 85, long=False) == pytest.approx(3.0)

    def test_risk_reward_never_negative(self):
        """Zero risk or a target on the wrong side gives 0."""
        assert risk_reward_ratio(100, 100, 110) == 0.0
        assert risk_reward_ratio(100, 95, 90) == 0.0
