"""Inputs shared by every pattern detector and the envelope they emit."""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from models.technicals import (
    DetectedPattern, IndicatorSeries, PatternStrength, PatternType, SignalDirection,
)
from services.confirmation import risk_reward_ratio


@dataclass(frozen=True, eq=False)
class PatternContext:
    """Price, volume and indicator arrays, all of length n."""

    prices: np.ndarray
    volumes: np.ndarray
    opens: np.ndarray
    highs: np.ndarray
    lows: np.ndarray
    rsi: np.ndarray
    sma20: np.ndarray
    sma50: np.ndarray
    atr: np.ndarray
    volume_ratio: np.ndarray

    @property
    def n(self) -> int:
        return len(self.prices)

    @classmethod
    def build(
        cls,
        prices,
        indicators: IndicatorSeries,
        volumes=None,
        highs=None,
        lows=None,
        opens=None,
    ) -> "PatternContext":
        p = np.asarray(prices, dtype=float)
        if opens is None:
            # close-only series: each bar opens at the previous close
            opens = np.concatenate([p[:1], p[:-1]])
        return cls(
            prices=p,
            volumes=np.zeros(len(p)) if volumes is None else np.asarray(volumes, dtype=float),
            opens=np.asarray(opens, dtype=float),
            highs=p if highs is None else np.asarray(highs, dtype=float),
            lows=p if lows is None else np.asarray(lows, dtype=float),
            rsi=np.asarray(indicators.rsi, dtype=float),
            sma20=np.asarray(indicators.sma20, dtype=float),
            sma50=np.asarray(indicators.sma50, dtype=float),
            atr=np.asarray(indicators.atr, dtype=float),
            volume_ratio=np.asarray(indicators.volume_ratio, dtype=float),
        )


def trade_pattern(
    pattern_type: PatternType,
    index: int,
    signal: SignalDirection,
    confidence: float,
    strength: PatternStrength,
    entry: float,
    stop: float,
    target: float,
    description: str = "",
    volume: bool = False,
    rsi: bool = False,
    ma: bool = False,
    key_levels: Optional[dict[str, float]] = None,
    metadata: Optional[dict] = None,
) -> DetectedPattern:
    """Wrap a detection with its trade levels. Bearish signals are scored as shorts."""
    long = signal != SignalDirection.BEARISH
    return DetectedPattern(
        pattern_type=pattern_type,
        index=int(index),
        signal=signal,
        confidence=float(min(1.0, max(0.0, confidence))),
        strength=strength,
        description=description,
        entry_price=float(entry),
        stop_loss=float(stop),
        take_profit=float(target),
        risk_reward_ratio=risk_reward_ratio(entry, stop, target, long=long),
        volume_confirmation=bool(volume),
        rsi_confirmation=bool(rsi),
        ma_confirmation=bool(ma),
        key_levels={k: float(v) for k, v in (key_levels or {}).items()},
        # numpy scalars do not serialise to JSON
        metadata={k: v.item() if isinstance(v, np.generic) else v for k, v in (metadata or {}).items()},
    )
