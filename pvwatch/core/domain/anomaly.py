"""
Anomaly Domain Models - Detection candidates, stored anomalies and feedback.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from pvwatch.core.domain.telemetry import UtcDatetime

AnomalyType = Literal[
    "production_drop",
    "production_spike",
    "efficiency_loss",
    "equipment_malfunction",
    "weather_inconsistency",
    "performance_degradation",
    "communication_loss",
    "power_quality_issue",
    "seasonal_deviation",
    "peer_comparison_outlier",
    "predictive_failure",
    "data_quality_issue",
]

AnomalyCategory = Literal[
    "production",
    "performance",
    "equipment_fault",
    "environmental",
    "communication",
    "data_anomaly",
]

AnomalySeverity = Literal["info", "warning", "critical"]

# Finer-grained tier reported by individual detection methods
SeverityTier = Literal["info", "low", "medium", "high", "critical"]

AnomalyStatus = Literal["active", "investigating", "resolved", "false_positive"]

Urgency = Literal["immediate", "within_hour", "within_day", "planned"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"resolved", "false_positive"})


@dataclass
class AnomalyCandidate:
    """
    Output of a single detection method.

    Candidates carry no identity; the orchestrator assigns one when a
    candidate is accepted.
    """

    system_id: str
    timestamp: datetime
    type: AnomalyType
    category: AnomalyCategory
    tier: SeverityTier
    severity: AnomalySeverity
    score: float  # 0.0 = normal, 1.0 = highly anomalous
    confidence: float
    method: str
    description: str
    current_value: float
    expected_value: float
    deviation: float = 0.0
    power_loss_kw: float = 0.0  # shortfall against expected output, kW
    affected_components: list[str] = field(default_factory=list)
    possible_causes: list[str] = field(default_factory=list)
    detected_by: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.score = min(max(self.score, 0.0), 1.0)
        self.confidence = min(max(self.confidence, 0.0), 1.0)
        if not self.detected_by:
            self.detected_by = [self.method]

    @property
    def dedup_key(self) -> tuple[str, str, datetime]:
        return (self.type, self.category, self.timestamp)


class HistoricalRange(BaseModel):
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    std_dev: float = 0.0


class SeasonalContext(BaseModel):
    time_of_day: int
    day_of_week: int
    day_of_year: int
    seasonal_expected: float | None = None
    seasonal_std_dev: float | None = None


class WeatherContext(BaseModel):
    irradiance: float | None = None
    ambient_temp: float | None = None
    module_temp: float | None = None
    cloud_cover: float | None = None
    precipitation: float | None = None


class SystemContext(BaseModel):
    capacity_kw: float
    dc_power: float
    ac_power: float
    voltage: float
    frequency: float
    quality_confidence: float


class AnomalyContext(BaseModel):
    """Snapshot of conditions at detection time."""

    current_value: float
    expected_value: float
    deviation: float = 0.0
    historical_range: HistoricalRange | None = None
    seasonal: SeasonalContext
    weather: WeatherContext
    system: SystemContext
    affected_components: list[str] = Field(default_factory=list)
    possible_causes: list[str] = Field(default_factory=list)


class AnomalyImpact(BaseModel):
    production_loss: float = 0.0  # kWh
    efficiency_drop: float = 0.0  # %
    financial_impact: float = 0.0  # $
    environmental_impact: float = 0.0  # kg CO2
    duration: float = 60.0  # minutes
    urgency: Urgency = "planned"


class AnomalyRecommendation(BaseModel):
    action: str
    priority: Literal["immediate", "high", "medium", "low"]
    category: Literal["inspection", "maintenance", "repair", "monitoring"]
    estimated_cost: float
    estimated_time: float  # minutes
    expected_benefit: str
    required_skills: list[str] = Field(default_factory=list)


class AnomalyFeedback(BaseModel):
    correct: bool = False
    actual_cause: str | None = None
    action_taken: str | None = None
    outcome: str | None = None
    submitted_by: str
    submitted_at: datetime


class FeedbackInput(BaseModel):
    """Operator-supplied part of the feedback."""

    correct: bool = False
    actual_cause: str | None = None
    action_taken: str | None = None
    outcome: str | None = None


class Anomaly(BaseModel):
    """
    An accepted anomaly.

    Append-only once created, except for the status, acknowledgement and
    feedback fields which the lifecycle manager mutates.
    """

    id: str
    system_id: str
    timestamp: datetime
    type: AnomalyType
    category: AnomalyCategory
    severity: AnomalySeverity
    score: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    description: str
    detected_by: list[str]
    context: AnomalyContext
    impact: AnomalyImpact
    recommendations: list[AnomalyRecommendation] = Field(default_factory=list)
    status: AnomalyStatus = "active"
    acknowledged: bool = False
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved_at: datetime | None = None
    feedback: AnomalyFeedback | None = None
    created_at: datetime

    @property
    def false_positive(self) -> bool:
        return self.status == "false_positive"

    @property
    def resolved(self) -> bool:
        return self.status == "resolved"


class SystemRecommendation(BaseModel):
    type: Literal["model_tuning", "threshold_adjustment", "maintenance_scheduling"]
    description: str
    priority: Literal["high", "medium", "low"]
    impact: str


class DetectionResult(BaseModel):
    """
    Outcome of one detection run.

    `skipped` means no method ran (disabled, excluded or unconfigured);
    `insufficient_data` means baseline-dependent methods were skipped.
    """

    system_id: str
    anomalies: list[Anomaly] = Field(default_factory=list)
    recommendations: list[SystemRecommendation] = Field(default_factory=list)
    skipped: bool = False
    skip_reason: str | None = None
    insufficient_data: bool = False
    failed_methods: list[str] = Field(default_factory=list)
    suppressed: int = 0


class AnomalyFilter(BaseModel):
    start: UtcDatetime | None = None
    end: UtcDatetime | None = None
    severity: list[AnomalySeverity] | None = None
    status: list[AnomalyStatus] | None = None
    limit: int = Field(default=100, ge=1)


class DetectionStatistics(BaseModel):
    total_anomalies: int = 0
    critical_anomalies: int = 0
    false_positives: int = 0
    average_score: float = 0.0
    accuracy: float | None = None
    false_positive_rate: float = 0.0
    by_severity: dict[str, int] = Field(default_factory=dict)
    detection_methods: dict[str, int] = Field(default_factory=dict)
