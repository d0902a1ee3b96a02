"""
Telemetry Domain Model - Measurements delivered by the ingestion layer.

Records are immutable once ingested (frozen Pydantic models).
"""

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class ProductionMetrics(BaseModel):
    """Electrical production snapshot."""

    model_config = ConfigDict(frozen=True)

    dc_power: float = 0.0  # kW
    ac_power: float = 0.0  # kW
    energy_delta: float = 0.0  # kWh since previous record
    voltage: float = 0.0  # V
    current: float = 0.0  # A
    frequency: float = 60.0  # Hz


class EnvironmentalConditions(BaseModel):
    """On-site environmental sensors (all optional)."""

    model_config = ConfigDict(frozen=True)

    irradiance: float | None = None  # W/m²
    ambient_temp: float | None = None  # °C
    module_temp: float | None = None  # °C


class PerformanceMetrics(BaseModel):
    """Derived performance indicators."""

    model_config = ConfigDict(frozen=True)

    performance_ratio: float = 0.0
    efficiency: float = 0.0  # %
    specific_yield: float = 0.0  # kWh/kWp
    capacity_factor: float = 0.0


class TelemetryRecord(BaseModel):
    """One time-stamped measurement for one system."""

    model_config = ConfigDict(frozen=True)

    system_id: str
    timestamp: UtcDatetime
    production: ProductionMetrics = Field(default_factory=ProductionMetrics)
    environmental: EnvironmentalConditions = Field(default_factory=EnvironmentalConditions)
    performance: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    quality_confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    def metric(self, name: str) -> float | None:
        """Look up a tracked metric by its baseline key."""
        if name == "ac_power":
            return self.production.ac_power
        if name == "performance_ratio":
            return self.performance.performance_ratio
        if name == "efficiency":
            return self.performance.efficiency
        return None


class WeatherSample(BaseModel):
    """Observed or forecast weather for a timestamp."""

    model_config = ConfigDict(frozen=True)

    timestamp: UtcDatetime
    irradiance: float = 0.0  # GHI, W/m²
    temperature: float = 25.0  # °C
    cloud_cover: float = Field(default=0.0, ge=0.0, le=1.0)
    precipitation: float = 0.0  # mm
    wind_speed: float = 0.0  # m/s
    humidity: float = 50.0  # %
