"""
Runs the full technical analysis pipeline over one price history.

Indicators, Fibonacci levels, chart patterns, demand zones, momentum/volume
setups, candlestick patterns, support/resistance trendlines, risk levels,
volatility stops, entry points, volume analysis and the bullishness score,
assembled into a single frozen AnalysisReport.
"""

import logging
from typing import Optional

import pandas as pd

from config import Settings, get_settings
from models.market_data import PricePoint
from models.technicals import (
    AnalysisReport, DetectedPattern, IndicatorSeries, PatternFamily, PatternGroups, VolumeAnalysis,
)
from services.bullishness import calculate_bullishness_score
from services.entry_points import identify_entry_points
from services.exceptions import InsufficientDataError
from services.fibonacci import calculate_fibonacci_levels
from services.indicator_engine import DEFAULT_PERIODS, IndicatorEngine
from services.pattern_aggregator import aggregate_patterns, group_by_family
from services.pattern_detector import PatternDetector
from services.risk_engine import calculate_risk_levels, calculate_volatility_stops
from services.swing_detector import identify_trendlines
from services.volume_profile import VolumeProfileAnalyzer
from utils.series import has_ohlc, points_to_dataframe

logger = logging.getLogger(__name__)


class TechnicalAnalyzer:
    """Stateless entry point; one instance can serve any number of series."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    # ---------- Input ----------

    def _frame(self, points: list[PricePoint], min_points: int = 1) -> pd.DataFrame:
        if len(points) < min_points:
            raise InsufficientDataError(required=min_points, actual=len(points))
        df = points_to_dataframe(points)
        if not (df["timestamp"].is_monotonic_increasing and df["timestamp"].is_unique):
            raise ValueError("Price points must be ordered by strictly ascending timestamp")
        return df

    @staticmethod
    def _ranges(points: list[PricePoint], df: pd.DataFrame):
        if has_ohlc(points):
            return df["high"].to_numpy(), df["low"].to_numpy()
        return None, None

    @staticmethod
    def _opens(points: list[PricePoint], df: pd.DataFrame):
        if all(p.open is not None for p in points):
            return df["open"].to_numpy()
        return None

    def periods_for(self, n: int) -> dict[str, int]:
        """Indicator periods for a series of length n, never longer than the series allows."""
        periods = IndicatorEngine.adaptive_periods(n) if self.settings.adaptive_periods else dict(DEFAULT_PERIODS)
        periods["rsi"] = self.settings.rsi_period
        periods["atr"] = self.settings.atr_period
        periods["volume_sma"] = self.settings.volume_sma_period
        for key in ("sma20", "sma50", "ema9", "ema20", "ema50", "bollinger", "volume_sma"):
            periods[key] = min(periods[key], n)
        return periods

    # ---------- Components ----------

    def compute_indicators(self, points: list[PricePoint]) -> IndicatorSeries:
        df = self._frame(points)
        highs, lows = self._ranges(points, df)
        return IndicatorEngine.compute_series(
            df["price"].to_numpy(),
            volumes=df["volume"].to_numpy(),
            highs=highs,
            lows=lows,
            periods=self.periods_for(len(df)),
        )

    def detect_patterns(
        self,
        points: list[PricePoint],
        families: Optional[list[PatternFamily]] = None,
        max_patterns: Optional[int] = None,
    ) -> tuple[list[DetectedPattern], PatternGroups, int]:
        """
        Detect, aggregate and group chart patterns.

        Returns:
            (ranked patterns, the same patterns grouped by family, raw candidate count)
        """
        df = self._frame(points, self.settings.min_data_points)
        highs, lows = self._ranges(points, df)
        prices = df["price"].to_numpy()
        volumes = df["volume"].to_numpy()
        indicators = IndicatorEngine.compute_series(
            prices, volumes=volumes, highs=highs, lows=lows, periods=self.periods_for(len(df)),
        )

        detector = PatternDetector(
            prices, indicators, volumes=volumes, highs=highs, lows=lows, opens=self._opens(points, df),
        )
        candidates = detector.detect_patterns(families or None)
        ranked = aggregate_patterns(
            candidates,
            len(df),
            max_patterns=max_patterns or self.settings.max_patterns,
            max_periods_back=self.settings.max_periods_back,
        )
        return ranked, group_by_family(ranked), len(candidates)

    def analyze_volume(self, points: list[PricePoint]) -> VolumeAnalysis:
        df = self._frame(points)
        highs, lows = self._ranges(points, df)
        return VolumeProfileAnalyzer.analyze_volume(
            df["price"].to_numpy(),
            df["volume"].to_numpy(),
            highs=highs,
            lows=lows,
            value_area_percent=self.settings.value_area_percent,
        )

    # ---------- Full pipeline ----------

    def analyze(
        self,
        points: list[PricePoint],
        include_volume_profile: bool = True,
        include_bullishness: bool = True,
    ) -> AnalysisReport:
        """
        Run every analysis component over `points`.

        Raises:
            InsufficientDataError: fewer than `min_data_points` points
            ValueError: timestamps out of order
        """
        s = self.settings
        df = self._frame(points, s.min_data_points)
        n = len(df)
        logger.info(f"Analyzing {n} price points")

        highs, lows = self._ranges(points, df)
        prices = df["price"].to_numpy()
        volumes = df["volume"].to_numpy()
        timestamps = [p.timestamp for p in points]

        periods = self.periods_for(n)
        indicators = IndicatorEngine.compute_series(prices, volumes=volumes, highs=highs, lows=lows, periods=periods)
        fibonacci = calculate_fibonacci_levels(prices, lookback=s.fibonacci_lookback, swing_window=s.swing_window)

        detector = PatternDetector(
            prices, indicators, volumes=volumes, highs=highs, lows=lows, opens=self._opens(points, df),
        )
        candidates = detector.detect_patterns()
        patterns = aggregate_patterns(candidates, n, max_patterns=s.max_patterns, max_periods_back=s.max_periods_back)
        demand_zones = detector.detect_demand_zones()
        enhanced = detector.detect_enhanced_patterns()
        candlesticks = detector.detect_candlestick_patterns()
        trendlines = identify_trendlines(
            prices if highs is None else highs,
            prices if lows is None else lows,
            lookback=s.trendline_lookback,
        )

        risk_levels = calculate_risk_levels(prices, lookback=s.risk_lookback, reward_risk_ratio=s.reward_risk_ratio)
        volatility_stops = calculate_volatility_stops(
            prices,
            indicators.atr,
            indicators.volatility_regimes,
            indicators.regime_multipliers,
            reward_risk_ratio=s.reward_risk_ratio,
        )
        entry_points = identify_entry_points(
            timestamps,
            prices,
            indicators.sma20,
            indicators.sma50,
            indicators.rsi,
            slow_period=periods["sma50"],
            max_entries=s.max_entry_points,
        )

        volume_analysis = None
        if include_volume_profile:
            volume_analysis = VolumeProfileAnalyzer.analyze_volume(
                prices, volumes, highs=highs, lows=lows, value_area_percent=s.value_area_percent,
            )

        bullishness = None
        if include_bullishness:
            bullishness = calculate_bullishness_score(prices, indicators, highs=highs, lows=lows)

        logger.info(
            f"Analysis complete: {len(candidates)} pattern candidates, {len(patterns)} kept, "
            f"{len(demand_zones)} demand zones, {len(enhanced)} enhanced patterns, "
            f"{len(candlesticks)} candlestick patterns, {len(trendlines)} trendlines, "
            f"{len(entry_points)} entry points"
        )

        return AnalysisReport(
            data_points=n,
            indicators=indicators,
            fibonacci=fibonacci,
            patterns=patterns,
            pattern_groups=group_by_family(patterns),
            demand_zones=demand_zones,
            enhanced_patterns=enhanced,
            candlestick_patterns=candlesticks,
            trendlines=trendlines,
            risk_levels=risk_levels,
            volatility_stops=volatility_stops,
            entry_points=entry_points,
            volume_analysis=volume_analysis,
            bullishness=bullishness,
        )
