"""
Chart pattern detection over a price series using swing-point identification
and geometric rule validation.

Geometric families: triangles, head & shoulders (and inverse), double top/bottom,
cup and handle, bull/bear flags, rising/falling wedges, trendlines. Demand zones,
momentum/volume setups and candlestick patterns are run separately and are not
aggregated.
"""

import logging

from models.technicals import DetectedPattern, IndicatorSeries, PatternFamily
from services.detectors.candlesticks import detect_candlesticks
from services.detectors.context import PatternContext
from services.detectors.cup_and_handle import detect_cup_and_handle
from services.detectors.demand_zones import detect_demand_zones
from services.detectors.double_patterns import detect_double_patterns
from services.detectors.enhanced_patterns import detect_enhanced_patterns
from services.detectors.flags import detect_flags
from services.detectors.head_and_shoulders import detect_head_and_shoulders
from services.detectors.trendlines import detect_trendlines
from services.detectors.triangles import detect_triangles
from services.detectors.wedges import detect_wedges

logger = logging.getLogger(__name__)

GEOMETRIC_FAMILIES = [
    PatternFamily.TRIANGLE,
    PatternFamily.HEAD_AND_SHOULDERS,
    PatternFamily.DOUBLE,
    PatternFamily.CUP_AND_HANDLE,
    PatternFamily.FLAG,
    PatternFamily.WEDGE,
    PatternFamily.TRENDLINE,
]


class PatternDetector:
    """Runs the pattern detectors against one price series."""

    detector_map = {
        PatternFamily.TRIANGLE: detect_triangles,
        PatternFamily.HEAD_AND_SHOULDERS: detect_head_and_shoulders,
        PatternFamily.DOUBLE: detect_double_patterns,
        PatternFamily.CUP_AND_HANDLE: detect_cup_and_handle,
        PatternFamily.FLAG: detect_flags,
        PatternFamily.WEDGE: detect_wedges,
        PatternFamily.TRENDLINE: detect_trendlines,
        PatternFamily.DEMAND_ZONE: detect_demand_zones,
        PatternFamily.ENHANCED: detect_enhanced_patterns,
        PatternFamily.CANDLESTICK: detect_candlesticks,
    }

    def __init__(self, prices, indicators: IndicatorSeries, volumes=None, highs=None, lows=None, opens=None):
        """
        Args:
            prices: Closing prices in chronological order
            indicators: Indicator arrays aligned with prices
            volumes: Optional volumes (zeros when missing)
            highs: Optional bar highs, prices when missing
            lows: Optional bar lows, prices when missing
            opens: Optional bar opens, the previous close when missing
        """
        self.ctx = PatternContext.build(prices, indicators, volumes=volumes, highs=highs, lows=lows, opens=opens)

    def detect_family(self, family: PatternFamily) -> list[DetectedPattern]:
        detected = self.detector_map[family](self.ctx)
        logger.debug(f"{family.value}: {len(detected)} candidates")
        return detected

    def detect_patterns(self, families: list[PatternFamily] = None) -> list[DetectedPattern]:
        """Run the requested families (all geometric families by default)."""
        results: list[DetectedPattern] = []
        for family in families or GEOMETRIC_FAMILIES:
            results.extend(self.detect_family(family))
        return results

    def detect_demand_zones(self) -> list[DetectedPattern]:
        return self.detect_family(PatternFamily.DEMAND_ZONE)

    def detect_enhanced_patterns(self) -> list[DetectedPattern]:
        return self.detect_family(PatternFamily.ENHANCED)

    def detect_candlestick_patterns(self) -> list[DetectedPattern]:
        return self.detect_family(PatternFamily.CANDLESTICK)
