"""Unit tests for the indicator library."""

import numpy as np
import pytest

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.technicals import VolatilityRegime
from services.exceptions import InsufficientDataError
from services.indicator_engine import IndicatorEngine


def _random_walk(n: int, seed: int = 7) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return 100 + np.cumsum(rng.normal(0, 1, n))


class TestMovingAverages:
    """SMA and EMA behaviour."""

    def test_sma_of_constant_series(self):
        """SMA of a constant series equals the constant everywhere."""
        sma = IndicatorEngine.sma([42.0] * 30, 10)
        assert len(sma) == 30
        assert np.allclose(sma, 42.0)

    def test_sma_matches_trailing_mean(self):
        """The last SMA value is the mean of the last `period` prices."""
        prices = np.arange(1, 31, dtype=float)
        sma = IndicatorEngine.sma(prices, 5)
        assert sma[-1] == pytest.approx(prices[-5:].mean())

    def test_sma_leading_region_is_padded(self):
        """Values before the first full window repeat the first defined value."""
        prices = np.arange(1, 21, dtype=float)
        sma = IndicatorEngine.sma(prices, 5)
        assert not np.isnan(sma).any()
        assert sma[0] == pytest.approx(sma[4])

    def test_sma_too_short_raises(self):
        """A period longer than the series is an InsufficientDataError."""
        with pytest.raises(InsufficientDataError) as exc:
            IndicatorEngine.sma([1.0, 2.0, 3.0], 5)
        assert exc.value.required == 5
        assert exc.value.actual == 3

    def test_ema_of_constant_series(self):
        """EMA of a constant series equals the constant."""
        ema = IndicatorEngine.ema([10.0] * 40, 9)
        assert np.allclose(ema, 10.0)

    def test_insufficient_data_is_a_value_error(self):
        """Callers catching ValueError also catch short-series errors."""
        with pytest.raises(ValueError):
            IndicatorEngine.ema([1.0], 9)


class TestRSI:
    """Wilder RSI."""

    def test_rsi_bounded(self):
        """RSI stays within [0, 100] for a random walk."""
        rsi = IndicatorEngine.rsi(_random_walk(200), 14)
        assert len(rsi) == 200
        assert np.all((rsi >= 0) & (rsi <= 100))

    def test_rsi_strictly_increasing_is_100(self):
        """With no losses the RSI is 100."""
        rsi = IndicatorEngine.rsi(np.arange(1, 31, dtype=float), 14)
        assert np.allclose(rsi, 100.0)

    def test_rsi_needs_period_plus_one(self):
        """Fifteen points are the minimum for a 14-period RSI."""
        IndicatorEngine.rsi(np.arange(1, 16, dtype=float), 14)
        with pytest.raises(InsufficientDataError):
            IndicatorEngine.rsi(np.arange(1, 15, dtype=float), 14)


class TestMACDAndBollinger:
    """MACD undefined region and Bollinger ordering."""

    def test_macd_leading_region_is_nan(self):
        """MACD is NaN before the slow EMA is defined and finite at the end."""
        macd = IndicatorEngine.macd(_random_walk(60))
        assert np.isnan(macd.macd[0])
        assert not np.isnan(macd.macd[-1])
        assert not np.isnan(macd.signal[-1])
        assert macd.histogram[-1] == pytest.approx(macd.macd[-1] - macd.signal[-1])

    def test_macd_serialises_nan_as_null(self):
        """JSON output carries null where MACD is undefined."""
        macd = IndicatorEngine.macd(_random_walk(60))
        dumped = macd.model_dump(mode="json")
        assert dumped["macd"][0] is None
        assert dumped["macd"][-1] is not None

    def test_bollinger_ordering(self):
        """upper >= middle >= lower at every index."""
        bands = IndicatorEngine.bollinger_bands(_random_walk(100), 20)
        upper, middle, lower = map(np.asarray, (bands.upper, bands.middle, bands.lower))
        assert np.all(upper >= middle)
        assert np.all(middle >= lower)

    def test_bollinger_flat_series_collapses(self):
        """A constant series has zero-width bands."""
        bands = IndicatorEngine.bollinger_bands([5.0] * 30, 20)
        assert np.allclose(bands.upper, bands.lower)

    def test_bollinger_uses_population_deviation(self):
        """Band width is two population deviations and the warm-up repeats the first band."""
        bands = IndicatorEngine.bollinger_bands([1.0, 2.0, 3.0, 4.0, 5.0], 5)
        assert bands.middle == pytest.approx([3.0] * 5)
        assert bands.upper == pytest.approx([3.0 + 2 * np.sqrt(2.0)] * 5)
        assert bands.lower == pytest.approx([3.0 - 2 * np.sqrt(2.0)] * 5)


class TestATRAndRegimes:
    """ATR and volatility regime tagging."""

    def test_atr_close_only_uses_absolute_moves(self):
        """Without high/low, a steady one-point move gives an ATR of one."""
        atr = IndicatorEngine.atr(np.arange(100, 140, dtype=float), period=14)
        assert len(atr) == 40
        assert np.allclose(atr, 1.0)

    def test_atr_with_ranges(self):
        """High/low ranges widen the true range."""
        closes = np.full(30, 100.0)
        atr = IndicatorEngine.atr(closes, highs=closes + 2, lows=closes - 2, period=14)
        assert atr[-1] == pytest.approx(4.0)

    def test_constant_atr_is_normal_regime(self):
        """ATR equal to its baseline is the normal regime with multiplier 1."""
        regimes, multipliers = IndicatorEngine.volatility_regime(np.full(30, 2.0))
        assert all(r == VolatilityRegime.NORMAL for r in regimes)
        assert np.allclose(multipliers, 1.0)

    def test_atr_jump_is_high_regime(self):
        """A sudden ATR jump reads as high volatility with a wider multiplier."""
        atr = np.concatenate([np.full(25, 1.0), [3.0]])
        regimes, multipliers = IndicatorEngine.volatility_regime(atr)
        assert regimes[-1] == VolatilityRegime.HIGH
        assert multipliers[-1] == pytest.approx(1.5)


class TestComputeSeries:
    """The combined indicator set."""

    def test_volume_ratio_without_volume(self):
        """Zero average volume gives a ratio of one."""
        ratio = IndicatorEngine.volume_ratio(np.zeros(10), np.zeros(10))
        assert np.allclose(ratio, 1.0)

    def test_adaptive_periods_for_short_series(self):
        """A 60-bar series shrinks the slow average to 30 bars."""
        periods = IndicatorEngine.adaptive_periods(60)
        assert periods["sma20"] == 20
        assert periods["sma50"] == 30
        assert periods["ema9"] == 9

    def test_all_arrays_aligned(self):
        """Every array has the input length."""
        prices = _random_walk(80)
        series = IndicatorEngine.compute_series(prices, volumes=np.full(80, 1000.0))
        for name in ("sma20", "sma50", "ema9", "ema20", "ema50", "rsi", "atr", "volume_sma", "volume_ratio"):
            assert len(getattr(series, name)) == 80, name
        assert len(series.macd.macd) == 80
        assert len(series.volatility_regimes) == 80

    def test_volume_length_mismatch(self):
        """Misaligned volumes are rejected."""
        with pytest.raises(ValueError):
            IndicatorEngine.compute_series(_random_walk(80), volumes=np.ones(10))
