import numpy as np
import logging

from models.technicals import RiskLevel, VolatilityRegime, VolatilityStop

logger = logging.getLogger(__name__)

SUPPORT_BAND = (0.85, 0.95)
RESISTANCE_BAND = (1.05, 1.15)
MIN_STOP_PCT = 0.02
MAX_STOP_PCT = 0.5
ATR_STOP_MULTIPLE = 2.0


def calculate_risk_levels(prices, lookback: int = 20, reward_risk_ratio: float = 2.5) -> list[RiskLevel]:
    """
    Per-bar long-side levels from the trailing range.

    Support and resistance are the trailing min/max, kept within 5-15% of the
    current price. The stop distance scales with the trailing range and never
    drops below 2%; the target sits `reward_risk_ratio` stop-distances above price.
    """
    arr = np.asarray(prices, dtype=float)
    levels: list[RiskLevel] = []

    for i, price in enumerate(arr):
        window = arr[max(0, i - lookback + 1):i + 1]
        low, high = float(window.min()), float(window.max())

        support = float(np.clip(low, price * SUPPORT_BAND[0], price * SUPPORT_BAND[1]))
        resistance = float(np.clip(high, price * RESISTANCE_BAND[0], price * RESISTANCE_BAND[1]))

        volatility = (high - low) / price
        stop_pct = min(MAX_STOP_PCT, max(MIN_STOP_PCT, volatility / 2))
        stop_loss = price * (1 - stop_pct)
        take_profit = price + reward_risk_ratio * (price - stop_loss)

        levels.append(RiskLevel(
            index=i,
            price=float(price),
            support=support,
            resistance=resistance,
            stop_loss=stop_loss,
            take_profit=take_profit,
            risk_reward_ratio=max(0.0, reward_risk_ratio),
        ))

    return levels


def calculate_volatility_stops(
    prices,
    atr,
    regimes: list[VolatilityRegime],
    multipliers,
    reward_risk_ratio: float = 2.5,
) -> list[VolatilityStop]:
    """ATR-sized stops widened or narrowed by each bar's volatility regime."""
    arr = np.asarray(prices, dtype=float)
    atr_arr = np.asarray(atr, dtype=float)
    mult_arr = np.asarray(multipliers, dtype=float)
    if not (len(arr) == len(atr_arr) == len(regimes) == len(mult_arr)):
        raise ValueError("prices, atr, regimes and multipliers must have equal length")

    stops: list[VolatilityStop] = []
    for i, price in enumerate(arr):
        distance = max(ATR_STOP_MULTIPLE * atr_arr[i] * mult_arr[i], MIN_STOP_PCT * price)
        # a stop can never sit at or below zero
        distance = min(distance, price * MAX_STOP_PCT)
        stops.append(VolatilityStop(
            index=i,
            price=float(price),
            atr=float(atr_arr[i]),
            regime=regimes[i],
            multiplier=float(mult_arr[i]),
            stop_loss=float(price - distance),
            take_profit=float(price + reward_risk_ratio * distance),
            risk_reward_ratio=max(0.0, reward_risk_ratio),
        ))

    logger.debug(f"Computed {len(stops)} volatility stops")
    return stops
