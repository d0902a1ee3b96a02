"""
Forecast Domain Models - Data structures for production predictions.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Horizon = Literal["hour", "day", "week", "month"]


class PredictionRange(BaseModel):
    """Prediction spread. Energy values are never negative."""

    min: float = Field(ge=0.0)
    max: float = Field(ge=0.0)
    p10: float = Field(ge=0.0)
    p50: float = Field(ge=0.0)
    p90: float = Field(ge=0.0)


class PredictionFactor(BaseModel):
    factor: str
    impact: float
    confidence: float = Field(ge=0.0, le=1.0)
    description: str


class ForecastResult(BaseModel):
    """Result of a production forecast."""

    system_id: str
    horizon: Horizon | None = None
    value: float = Field(ge=0.0)
    confidence: float = Field(ge=0.0, le=1.0)
    range: PredictionRange
    factors: list[PredictionFactor] = Field(default_factory=list)
    methodology: str
    generated_at: datetime
    valid_for: int  # minutes
    target_time: datetime | None = None
