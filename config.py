from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    # General
    app_name: str = "Technical Analysis Engine"
    debug: bool = False
    log_level: str = "INFO"
    cors_allow_origins: list[str] = ["*"]

    # Input validation
    min_data_points: int = 50

    # Indicators
    adaptive_periods: bool = True  # shrink MA periods for short series
    rsi_period: int = 14
    atr_period: int = 14
    volume_sma_period: int = 20

    # Swings / Fibonacci
    fibonacci_lookback: int = 100
    swing_window: int = 5
    trendline_lookback: int = 30

    # Pattern aggregation
    max_patterns: int = 5
    max_periods_back: int = 30

    # Risk and entries
    max_entry_points: int = 15
    reward_risk_ratio: float = 2.5
    risk_lookback: int = 20

    # Volume profile
    value_area_percent: float = 0.70

    model_config = {"env_file": ".env", "env_prefix": "TA_"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
