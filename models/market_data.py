from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class PricePoint(BaseModel):
    """One observation of an asset. Only timestamp and price are mandatory."""

    timestamp: datetime
    price: float = Field(gt=0)
    volume: Optional[float] = Field(default=None, ge=0)
    open: Optional[float] = Field(default=None, gt=0)
    high: Optional[float] = Field(default=None, gt=0)
    low: Optional[float] = Field(default=None, gt=0)
    close: Optional[float] = Field(default=None, gt=0)

    model_config = {"frozen": True}


class PriceSeriesRequest(BaseModel):
    ticker: str
    points: list[PricePoint] = Field(description="Price points ordered by ascending timestamp")
