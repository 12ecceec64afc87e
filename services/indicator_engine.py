import numpy as np
import pandas as pd
import pandas_ta as ta
import logging
from typing import Optional

from models.technicals import IndicatorSeries, MACDSeries, BollingerBands, VolatilityRegime
from services.exceptions import InsufficientDataError

logger = logging.getLogger(__name__)

# ATR relative to its own moving baseline
REGIME_HIGH_RATIO = 1.3
REGIME_LOW_RATIO = 0.7
REGIME_BASELINE_PERIOD = 20
REGIME_MULTIPLIERS = {
    VolatilityRegime.LOW: 0.8,
    VolatilityRegime.NORMAL: 1.0,
    VolatilityRegime.HIGH: 1.5,
}

DEFAULT_PERIODS = {
    "sma20": 20,
    "sma50": 50,
    "ema9": 9,
    "ema20": 20,
    "ema50": 50,
    "rsi": 14,
    "atr": 14,
    "volume_sma": 20,
    "bollinger": 20,
    "macd_fast": 12,
    "macd_slow": 26,
    "macd_signal": 9,
}


class IndicatorEngine:
    """
    Computes technical indicators over a price array.

    Every returned array has the input's length. Leading values that cannot be
    computed yet are filled with the first computable value, except for MACD,
    whose undefined region stays NaN.
    """

    @staticmethod
    def sma(values, period: int) -> np.ndarray:
        arr = _as_array(values)
        _require(len(arr), period, f"SMA({period})")
        series = ta.sma(pd.Series(arr), length=period)
        return _pad_leading(series.to_numpy(dtype=float))

    @staticmethod
    def ema(values, period: int) -> np.ndarray:
        arr = _as_array(values)
        _require(len(arr), period, f"EMA({period})")
        return _pad_leading(_ema_raw(arr, period))

    @staticmethod
    def rsi(values, period: int = 14) -> np.ndarray:
        """Wilder RSI. An average loss of zero reads as 100."""
        arr = _as_array(values)
        _require(len(arr), period + 1, f"RSI({period})")

        deltas = np.diff(arr)
        gains = np.clip(deltas, 0, None)
        losses = np.clip(-deltas, 0, None)

        avg_gain = gains[:period].mean()
        avg_loss = losses[:period].mean()

        out = np.full(len(arr), np.nan)
        out[period] = _rsi_value(avg_gain, avg_loss)
        for i in range(period, len(deltas)):
            avg_gain = (avg_gain * (period - 1) + gains[i]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i]) / period
            out[i + 1] = _rsi_value(avg_gain, avg_loss)

        return _pad_leading(out)

    @staticmethod
    def macd(values, fast: int = 12, slow: int = 26, signal: int = 9) -> MACDSeries:
        arr = _as_array(values)
        _require(len(arr), slow, f"MACD({fast},{slow},{signal})")

        macd_line = _ema_raw(arr, fast) - _ema_raw(arr, slow)

        signal_line = np.full(len(arr), np.nan)
        defined = np.flatnonzero(~np.isnan(macd_line))
        if len(defined) >= signal:
            first = defined[0]
            signal_line[first:] = _ema_raw(macd_line[first:], signal)

        histogram = macd_line - signal_line
        return MACDSeries(
            macd=macd_line.tolist(),
            signal=signal_line.tolist(),
            histogram=histogram.tolist(),
        )

    @staticmethod
    def bollinger_bands(values, period: int = 20, std_dev: float = 2.0) -> BollingerBands:
        arr = _as_array(values)
        _require(len(arr), period, f"Bollinger({period})")

        # population stdev per trailing window
        bb_df = ta.bbands(pd.Series(arr), length=period, std=std_dev, ddof=0)
        if bb_df is None or bb_df.empty:
            raise InsufficientDataError(period, len(arr), f"Bollinger({period})")
        lower, middle, upper = (
            _pad_leading(bb_df.iloc[:, col].to_numpy(dtype=float)) for col in range(3)
        )

        return BollingerBands(
            upper=upper.tolist(),
            middle=middle.tolist(),
            lower=lower.tolist(),
        )

    @staticmethod
    def atr(values, highs=None, lows=None, period: int = 14) -> np.ndarray:
        """
        Average true range. With high/low available this is the classic true
        range; otherwise the absolute close-to-close move stands in for it.
        """
        arr = _as_array(values)
        _require(len(arr), period + 1, f"ATR({period})")

        prev = arr[:-1]
        if highs is None or lows is None:
            true_range = np.abs(np.diff(arr))
        else:
            h = _as_array(highs)[1:]
            l = _as_array(lows)[1:]
            true_range = np.maximum.reduce([h - l, np.abs(h - prev), np.abs(l - prev)])

        tr = pd.Series(np.concatenate([[np.nan], true_range]))
        return _pad_leading(tr.rolling(period).mean().to_numpy(dtype=float))

    @staticmethod
    def volatility_regime(
        atr_values, baseline_period: int = REGIME_BASELINE_PERIOD,
    ) -> tuple[list[VolatilityRegime], np.ndarray]:
        """Tag each bar low/normal/high by comparing ATR to its trailing mean."""
        atr_arr = _as_array(atr_values)
        window = max(1, min(baseline_period, len(atr_arr)))
        baseline = pd.Series(atr_arr).rolling(window, min_periods=1).mean().to_numpy()

        regimes: list[VolatilityRegime] = []
        for value, base in zip(atr_arr, baseline):
            if base > 0 and value > base * REGIME_HIGH_RATIO:
                regimes.append(VolatilityRegime.HIGH)
            elif base > 0 and value < base * REGIME_LOW_RATIO:
                regimes.append(VolatilityRegime.LOW)
            else:
                regimes.append(VolatilityRegime.NORMAL)

        multipliers = np.array([REGIME_MULTIPLIERS[r] for r in regimes], dtype=float)
        return regimes, multipliers

    @staticmethod
    def volume_sma(volumes, period: int = 20) -> np.ndarray:
        return IndicatorEngine.sma(volumes, period)

    @staticmethod
    def volume_ratio(volumes, volume_sma) -> np.ndarray:
        vol = _as_array(volumes)
        avg = _as_array(volume_sma)
        safe = np.where(avg > 0, avg, 1.0)
        return np.where(avg > 0, vol / safe, 1.0)

    @staticmethod
    def adaptive_periods(n: int) -> dict[str, int]:
        """Moving-average periods shrunk to fit short series."""
        periods = dict(DEFAULT_PERIODS)
        periods["sma20"] = min(20, max(5, n // 3))
        periods["sma50"] = min(50, max(10, n // 2))
        periods["ema9"] = min(9, max(3, n // 6))
        periods["ema20"] = min(20, max(5, n // 3))
        periods["ema50"] = min(50, max(10, n // 2))
        return periods

    @staticmethod
    def compute_series(
        prices,
        volumes=None,
        highs=None,
        lows=None,
        periods: Optional[dict[str, int]] = None,
    ) -> IndicatorSeries:
        """
        Compute the full indicator set.

        Args:
            prices: Closing prices in chronological order
            volumes: Optional volumes, zeros when missing
            highs: Optional bar highs (used by ATR only)
            lows: Optional bar lows (used by ATR only)
            periods: Overrides for DEFAULT_PERIODS

        Raises:
            InsufficientDataError: if the series is shorter than any period
        """
        arr = _as_array(prices)
        n = len(arr)
        p = dict(DEFAULT_PERIODS)
        if periods:
            p.update(periods)

        vol = np.zeros(n) if volumes is None else _as_array(volumes)
        if len(vol) != n:
            raise ValueError(f"volumes has length {len(vol)}, expected {n}")

        atr = IndicatorEngine.atr(arr, highs, lows, period=p["atr"])
        regimes, multipliers = IndicatorEngine.volatility_regime(atr)
        vol_sma = IndicatorEngine.volume_sma(vol, min(p["volume_sma"], n))

        series = IndicatorSeries(
            sma20=IndicatorEngine.sma(arr, p["sma20"]).tolist(),
            sma50=IndicatorEngine.sma(arr, p["sma50"]).tolist(),
            ema9=IndicatorEngine.ema(arr, p["ema9"]).tolist(),
            ema20=IndicatorEngine.ema(arr, p["ema20"]).tolist(),
            ema50=IndicatorEngine.ema(arr, p["ema50"]).tolist(),
            rsi=IndicatorEngine.rsi(arr, p["rsi"]).tolist(),
            macd=IndicatorEngine.macd(arr, p["macd_fast"], p["macd_slow"], p["macd_signal"]),
            bollinger=IndicatorEngine.bollinger_bands(arr, p["bollinger"]),
            atr=atr.tolist(),
            volatility_regimes=regimes,
            regime_multipliers=multipliers.tolist(),
            volume_sma=vol_sma.tolist(),
            volume_ratio=IndicatorEngine.volume_ratio(vol, vol_sma).tolist(),
            periods=p,
        )
        logger.debug(f"Computed indicator series for {n} points with periods {p}")
        return series


def _as_array(values) -> np.ndarray:
    return np.asarray(values, dtype=float)


def _require(actual: int, required: int, what: str):
    if actual < required:
        raise InsufficientDataError(required=required, actual=actual, what=what)


def _ema_raw(arr: np.ndarray, period: int) -> np.ndarray:
    """SMA-seeded EMA with NaN before the seed."""
    series = ta.ema(pd.Series(arr), length=period)
    return series.to_numpy(dtype=float)


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return float(np.clip(100 - 100 / (1 + rs), 0, 100))


def _pad_leading(arr: np.ndarray) -> np.ndarray:
    """Repeat the first finite value over the leading undefined region."""
    finite = np.flatnonzero(np.isfinite(arr))
    if len(finite) == 0:
        return arr
    out = arr.copy()
    out[: finite[0]] = out[finite[0]]
    return out
