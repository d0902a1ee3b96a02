"""
Detection Configuration - Per-system settings for the anomaly detector.

Uses Pydantic for validation and schema generation.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

DetectionMethodName = Literal[
    "statistical_outlier",
    "threshold_analysis",
    "trend_analysis",
    "comparative_analysis",
    "physics_based",
    "seasonal_anomaly",
    "pattern_recognition",
]

ExclusionType = Literal["weather", "maintenance", "grid", "manual"]


class SeverityThresholds(BaseModel):
    """Minimum anomaly score per severity. Must be strictly increasing."""

    info: float = Field(default=0.3, ge=0.0, le=1.0)
    warning: float = Field(default=0.6, ge=0.0, le=1.0)
    critical: float = Field(default=0.8, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_order(self) -> "SeverityThresholds":
        if not self.info < self.warning < self.critical:
            raise ValueError("severity thresholds must satisfy info < warning < critical")
        return self

    def for_severity(self, severity: str) -> float:
        return getattr(self, severity)


class FrequencyLimits(BaseModel):
    """Alert-rate caps per system."""

    max_per_hour: int = Field(default=5, ge=0)
    max_per_day: int = Field(default=20, ge=0)
    cooldown_minutes: float = Field(default=15.0, ge=0.0)


class ImpactThresholds(BaseModel):
    """An anomaly is kept if it clears any one of these minimums."""

    min_production_loss: float = 1.0  # kWh
    min_efficiency_drop: float = 2.0  # %
    min_financial_impact: float = 0.5  # $


class AlertThresholds(BaseModel):
    severity: SeverityThresholds = Field(default_factory=SeverityThresholds)
    frequency: FrequencyLimits = Field(default_factory=FrequencyLimits)
    impact: ImpactThresholds = Field(default_factory=ImpactThresholds)


class Range(BaseModel):
    min: float
    max: float

    @model_validator(mode="after")
    def _check_bounds(self) -> "Range":
        if self.min > self.max:
            raise ValueError("range min must not exceed max")
        return self

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


class OperatingLimits(BaseModel):
    """Fixed physical/operational bounds for the threshold check."""

    performance_ratio: Range = Field(default_factory=lambda: Range(min=0.6, max=1.2))
    voltage_range: Range = Field(default_factory=lambda: Range(min=100.0, max=800.0))
    frequency_range: Range = Field(default_factory=lambda: Range(min=49.0, max=61.0))
    # Fraction beyond a voltage bound at which the violation becomes critical
    voltage_critical_margin: float = 0.1


class MethodTuning(BaseModel):
    """Tunable constants of the detection methods."""

    z_score_threshold: float = 2.5
    seasonal_sigma: float = 2.0
    trend_window: int = Field(default=10, ge=10)
    trend_slope_threshold: float = -0.01
    comparative_deviation: float = 0.2
    weather_match_minutes: float = 30.0
    derating_factor: float = 0.8
    ac_dc_tolerance: float = 0.05
    max_efficiency_pct: float = 25.0


class ImpactModel(BaseModel):
    """Conversion factors used when estimating anomaly impact."""

    energy_price: float = 0.15  # $/kWh
    emission_factor: float = 0.4  # kg CO2 per kWh
    expected_duration_minutes: float = 60.0


class SystemProfile(BaseModel):
    """Static facts about the monitored installation."""

    capacity_kw: float = Field(default=10.0, gt=0.0)
    technology: str = "monocrystalline"


class ExclusionCondition(BaseModel):
    """
    A condition under which records are not analysed.

    Parameters by type:
    - weather: min_irradiance (W/m²), max_precipitation (mm)
    - maintenance: windows [{start, end}], buffer_hours
    - grid: min_voltage (V), windows [{start, end}]
    - manual: active (bool), windows [{start, end}]
    """

    type: ExclusionType
    condition: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True


def default_exclusions() -> list[ExclusionCondition]:
    return [
        ExclusionCondition(
            type="weather",
            condition="irradiance < 100 or precipitation > 10",
            parameters={"min_irradiance": 100.0, "max_precipitation": 10.0},
        ),
        ExclusionCondition(
            type="maintenance",
            condition="scheduled_maintenance",
            parameters={"buffer_hours": 2, "windows": []},
        ),
    ]


class DetectionConfig(BaseModel):
    """
    Complete detection configuration for one system.
    """

    # --- Identity ---
    system_id: str
    enabled: bool = True
    sensitivity: Literal["low", "medium", "high"] = "medium"

    # --- Methods ---
    detection_methods: list[DetectionMethodName] = Field(
        default_factory=lambda: [
            "statistical_outlier",
            "threshold_analysis",
            "trend_analysis",
            "comparative_analysis",
            "physics_based",
        ]
    )

    # --- Alerting ---
    alert_thresholds: AlertThresholds = Field(default_factory=AlertThresholds)
    exclude_conditions: list[ExclusionCondition] = Field(default_factory=default_exclusions)

    # --- Baseline ---
    historical_window_days: int = Field(default=30, ge=1)
    minimum_data_points: int = Field(default=100, ge=1)

    # --- Tuning ---
    thresholds: OperatingLimits = Field(default_factory=OperatingLimits)
    tuning: MethodTuning = Field(default_factory=MethodTuning)
    impact_model: ImpactModel = Field(default_factory=ImpactModel)
    system: SystemProfile = Field(default_factory=SystemProfile)
