from pydantic import BaseModel, Field, field_serializer
from datetime import datetime
from typing import Optional
from enum import Enum
import math

from models.market_data import PriceSeriesRequest


class PatternType(str, Enum):
    ASCENDING_TRIANGLE = "ascending_triangle"
    DESCENDING_TRIANGLE = "descending_triangle"
    SYMMETRICAL_TRIANGLE = "symmetrical_triangle"
    HEAD_AND_SHOULDERS = "head_and_shoulders"
    INVERSE_HEAD_AND_SHOULDERS = "inverse_head_and_shoulders"
    DOUBLE_TOP = "double_top"
    DOUBLE_BOTTOM = "double_bottom"
    CUP_AND_HANDLE = "cup_and_handle"
    BULL_FLAG = "bull_flag"
    BEAR_FLAG = "bear_flag"
    RISING_WEDGE = "rising_wedge"
    FALLING_WEDGE = "falling_wedge"
    RISING_TRENDLINE = "rising_trendline"
    FALLING_TRENDLINE = "falling_trendline"
    DEMAND_ZONE = "demand_zone"
    RESISTANCE_BREAKOUT = "resistance_breakout"
    SUPPORT_BREAKDOWN = "support_breakdown"
    BULLISH_REVERSAL = "bullish_reversal"
    BEARISH_REVERSAL = "bearish_reversal"
    VOLUME_SPIKE = "volume_spike"
    MOMENTUM_DIVERGENCE = "momentum_divergence"
    DOJI = "doji"
    HAMMER = "hammer"
    SHOOTING_STAR = "shooting_star"
    BULLISH_ENGULFING = "bullish_engulfing"
    BEARISH_ENGULFING = "bearish_engulfing"


class PatternFamily(str, Enum):
    TRIANGLE = "triangle"
    HEAD_AND_SHOULDERS = "head_and_shoulders"
    DOUBLE = "double"
    CUP_AND_HANDLE = "cup_and_handle"
    FLAG = "flag"
    WEDGE = "wedge"
    TRENDLINE = "trendline"
    DEMAND_ZONE = "demand_zone"
    ENHANCED = "enhanced"
    CANDLESTICK = "candlestick"


PATTERN_FAMILIES: dict[PatternType, PatternFamily] = {
    PatternType.ASCENDING_TRIANGLE: PatternFamily.TRIANGLE,
    PatternType.DESCENDING_TRIANGLE: PatternFamily.TRIANGLE,
    PatternType.SYMMETRICAL_TRIANGLE: PatternFamily.TRIANGLE,
    PatternType.HEAD_AND_SHOULDERS: PatternFamily.HEAD_AND_SHOULDERS,
    PatternType.INVERSE_HEAD_AND_SHOULDERS: PatternFamily.HEAD_AND_SHOULDERS,
    PatternType.DOUBLE_TOP: PatternFamily.DOUBLE,
    PatternType.DOUBLE_BOTTOM: PatternFamily.DOUBLE,
    PatternType.CUP_AND_HANDLE: PatternFamily.CUP_AND_HANDLE,
    PatternType.BULL_FLAG: PatternFamily.FLAG,
    PatternType.BEAR_FLAG: PatternFamily.FLAG,
    PatternType.RISING_WEDGE: PatternFamily.WEDGE,
    PatternType.FALLING_WEDGE: PatternFamily.WEDGE,
    PatternType.RISING_TRENDLINE: PatternFamily.TRENDLINE,
    PatternType.FALLING_TRENDLINE: PatternFamily.TRENDLINE,
    PatternType.DEMAND_ZONE: PatternFamily.DEMAND_ZONE,
    PatternType.RESISTANCE_BREAKOUT: PatternFamily.ENHANCED,
    PatternType.SUPPORT_BREAKDOWN: PatternFamily.ENHANCED,
    PatternType.BULLISH_REVERSAL: PatternFamily.ENHANCED,
    PatternType.BEARISH_REVERSAL: PatternFamily.ENHANCED,
    PatternType.VOLUME_SPIKE: PatternFamily.ENHANCED,
    PatternType.MOMENTUM_DIVERGENCE: PatternFamily.ENHANCED,
    PatternType.DOJI: PatternFamily.CANDLESTICK,
    PatternType.HAMMER: PatternFamily.CANDLESTICK,
    PatternType.SHOOTING_STAR: PatternFamily.CANDLESTICK,
    PatternType.BULLISH_ENGULFING: PatternFamily.CANDLESTICK,
    PatternType.BEARISH_ENGULFING: PatternFamily.CANDLESTICK,
}


class SignalDirection(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class PatternStrength(str, Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"
    VERY_STRONG = "very_strong"


class TrendDirection(str, Enum):
    UPTREND = "uptrend"
    DOWNTREND = "downtrend"
    SIDEWAYS = "sideways"


class VolatilityRegime(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class SwingKind(str, Enum):
    HIGH = "high"
    LOW = "low"


class TrendlineKind(str, Enum):
    SUPPORT = "support"
    RESISTANCE = "resistance"


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ---------- Indicators ----------

class MACDSeries(BaseModel):
    macd: list[Optional[float]]  # NaN until the slow EMA is defined
    signal: list[Optional[float]]
    histogram: list[Optional[float]]

    @field_serializer("macd", "signal", "histogram", when_used="json")
    def _nan_as_null(self, values: list[Optional[float]]) -> list[Optional[float]]:
        return [None if v is None or math.isnan(v) else v for v in values]


class BollingerBands(BaseModel):
    upper: list[float]
    middle: list[float]
    lower: list[float]


class IndicatorSeries(BaseModel):
    """Indicator arrays aligned index-for-index with the input points."""

    sma20: list[float]
    sma50: list[float]
    ema9: list[float]
    ema20: list[float]
    ema50: list[float]
    rsi: list[float]
    macd: MACDSeries
    bollinger: BollingerBands
    atr: list[float]
    volatility_regimes: list[VolatilityRegime]
    regime_multipliers: list[float]
    volume_sma: list[float]
    volume_ratio: list[float]
    periods: dict[str, int] = {}


class SwingPoint(BaseModel):
    index: int
    price: float
    kind: SwingKind

    model_config = {"frozen": True}


class Trendline(BaseModel):
    """Least-squares line through recent swing lows (support) or highs (resistance)."""

    kind: TrendlineKind
    start_index: int
    start_price: float
    end_index: int
    end_price: float
    slope: float  # price per bar
    touches: int


class FibonacciLevels(BaseModel):
    level_0: float
    level_236: float
    level_382: float
    level_500: float
    level_618: float
    level_764: float
    level_786: float
    level_1000: float
    swing_high: float
    swing_low: float
    trend: TrendDirection


# ---------- Patterns ----------

class DetectedPattern(BaseModel):
    """Common envelope for every detector; geometry lives in key_levels/metadata."""

    pattern_type: PatternType
    index: int
    signal: SignalDirection
    confidence: float = Field(ge=0, le=1)
    strength: PatternStrength
    description: str = ""
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    risk_reward_ratio: Optional[float] = Field(default=None, ge=0)
    volume_confirmation: bool = False
    rsi_confirmation: bool = False
    ma_confirmation: bool = False
    key_levels: dict[str, float] = {}
    metadata: dict = {}

    model_config = {"frozen": True}

    @property
    def family(self) -> PatternFamily:
        return PATTERN_FAMILIES[self.pattern_type]


class PatternGroups(BaseModel):
    triangles: list[DetectedPattern] = []
    head_and_shoulders: list[DetectedPattern] = []
    double_patterns: list[DetectedPattern] = []
    cup_and_handle: list[DetectedPattern] = []
    flags: list[DetectedPattern] = []
    wedges: list[DetectedPattern] = []
    trendlines: list[DetectedPattern] = []


# ---------- Risk & entries ----------

class RiskLevel(BaseModel):
    index: int
    price: float
    support: float
    resistance: float
    stop_loss: float
    take_profit: float
    risk_reward_ratio: float = Field(ge=0)


class VolatilityStop(BaseModel):
    index: int
    price: float
    atr: float
    regime: VolatilityRegime
    multiplier: float
    stop_loss: float
    take_profit: float
    risk_reward_ratio: float = Field(ge=0)


class EntryPoint(BaseModel):
    index: int
    timestamp: datetime
    price: float
    reason: str
    confidence: float = Field(ge=0, le=1)
    tier: ConfidenceTier
    signal: SignalDirection = SignalDirection.BULLISH


# ---------- Volume ----------

class VolumeTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class SpikeSignificance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PriceLevel(BaseModel):
    price: float
    volume: float
    volume_percent: float
    is_high_volume: bool = False
    is_support: bool = False
    is_resistance: bool = False


class ValueArea(BaseModel):
    high: float
    low: float
    volume: float
    volume_percent: float


class PointOfControl(BaseModel):
    price: float
    volume: float


class VolumeAtPrice(BaseModel):
    price: float
    volume: float
    strength: PatternStrength


class VolumeLevel(BaseModel):
    price: float
    volume: float
    strength: float  # share of total volume, percent
    touches: int


class VolumeProfile(BaseModel):
    price_levels: list[PriceLevel]
    value_area: ValueArea
    point_of_control: PointOfControl
    volume_at_price: list[VolumeAtPrice]
    support_levels: list[VolumeLevel]
    resistance_levels: list[VolumeLevel]


class VolumeSpike(BaseModel):
    index: int
    volume: float
    volume_ratio: float
    price_change: float
    significance: SpikeSignificance


class VolumeDivergence(BaseModel):
    index: int
    signal: SignalDirection
    strength: float
    description: str


class VolumeAnalysis(BaseModel):
    volume_trend: VolumeTrend
    volume_spikes: list[VolumeSpike]
    volume_divergences: list[VolumeDivergence]
    accumulation_distribution: list[float]
    on_balance_volume: list[float]
    volume_profile: VolumeProfile


# ---------- Bullishness ----------

class BullishnessBreakdown(BaseModel):
    moving_averages: float
    rsi: float
    macd: float
    volume_analysis: float
    price_action: float
    trend_strength: float


class BullishnessSignals(BaseModel):
    bullish: list[str] = []
    bearish: list[str] = []
    neutral: list[str] = []


class BullishnessScore(BaseModel):
    overall: float = Field(ge=0, le=100)
    technical: float = Field(ge=0, le=100)
    momentum: float = Field(ge=0, le=100)
    volume: float = Field(ge=0, le=100)
    trend: float = Field(ge=0, le=100)
    breakdown: BullishnessBreakdown
    signals: BullishnessSignals


# ---------- Report ----------

class AnalysisReport(BaseModel):
    data_points: int
    indicators: IndicatorSeries
    fibonacci: FibonacciLevels
    patterns: list[DetectedPattern]
    pattern_groups: PatternGroups
    demand_zones: list[DetectedPattern]
    enhanced_patterns: list[DetectedPattern]
    candlestick_patterns: list[DetectedPattern] = []
    trendlines: list[Trendline] = []
    risk_levels: list[RiskLevel]
    volatility_stops: list[VolatilityStop]
    entry_points: list[EntryPoint]
    volume_analysis: Optional[VolumeAnalysis] = None
    bullishness: Optional[BullishnessScore] = None

    model_config = {"frozen": True}


# ---------- API ----------

class IndicatorsRequest(PriceSeriesRequest):
    pass


class VolumeProfileRequest(PriceSeriesRequest):
    pass


class AnalysisRequest(PriceSeriesRequest):
    include_volume_profile: bool = True
    include_bullishness: bool = True


class AnalysisResponse(BaseModel):
    ticker: str
    report: AnalysisReport


class IndicatorsResponse(BaseModel):
    ticker: str
    indicators: IndicatorSeries


class PatternDetectionRequest(PriceSeriesRequest):
    families: list[PatternFamily] = Field(
        default_factory=list, description="Families to scan; empty means all geometric families"
    )
    max_patterns: Optional[int] = Field(default=None, ge=1)


class PatternDetectionResponse(BaseModel):
    ticker: str
    patterns: list[DetectedPattern]
    groups: PatternGroups
    candidates_scanned: int


class VolumeProfileResponse(BaseModel):
    ticker: str
    analysis: VolumeAnalysis
