"""
Detection Method Port - Pluggable strategies that turn one record into candidates.

Methods are pure: they read the context and return candidates, never mutating
the baseline, config or history they are given.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Literal

from pvwatch.core.domain.anomaly import AnomalyCandidate, AnomalySeverity, SeverityTier
from pvwatch.core.domain.baseline import Baseline
from pvwatch.core.domain.config import DetectionConfig
from pvwatch.core.domain.telemetry import TelemetryRecord, WeatherSample
from pvwatch.core.errors import InsufficientDataError

TierContext = Literal["statistical", "threshold", "trend", "comparative"]

# Lower bounds per tier, checked from most to least severe
_TIER_BOUNDS: dict[str, list[tuple[SeverityTier, float]]] = {
    "statistical": [("critical", 3.0), ("high", 2.5), ("medium", 2.0), ("low", 1.5)],
    "threshold": [("critical", 0.3), ("high", 0.2), ("medium", 0.1)],
    "trend": [("critical", 5.0), ("high", 3.0), ("medium", 2.0)],
    "comparative": [("critical", 0.4), ("high", 0.3), ("medium", 0.2)],
}

_FLOOR_TIER: dict[str, SeverityTier] = {
    "statistical": "info",
    "threshold": "low",
    "trend": "low",
    "comparative": "low",
}


def closest_weather(
    samples: Iterable[WeatherSample],
    ts: datetime,
    within: timedelta,
) -> WeatherSample | None:
    """Weather sample nearest to `ts`, if one lies inside `within`."""
    best: WeatherSample | None = None
    best_gap: timedelta | None = None
    for sample in samples:
        gap = abs(sample.timestamp - ts)
        if gap > within:
            continue
        if best_gap is None or gap < best_gap:
            best, best_gap = sample, gap
    return best


TIER_TO_SEVERITY: dict[SeverityTier, AnomalySeverity] = {
    "critical": "critical",
    "high": "warning",
    "medium": "warning",
    "low": "info",
    "info": "info",
}


def tier_for(deviation: float, context: TierContext) -> SeverityTier:
    """Map a method-specific deviation measure onto a severity tier."""
    for tier, bound in _TIER_BOUNDS[context]:
        if deviation > bound:
            return tier
    return _FLOOR_TIER[context]


def severity_for(tier: SeverityTier) -> AnomalySeverity:
    return TIER_TO_SEVERITY[tier]


@dataclass(frozen=True)
class DetectionContext:
    """
    Everything a method may look at for one record.

    `baseline` is None when the system has too little history; `history`
    holds previously ingested records, oldest first, excluding `record`.
    """

    record: TelemetryRecord
    config: DetectionConfig
    baseline: Baseline | None = None
    history: tuple[TelemetryRecord, ...] = field(default_factory=tuple)
    weather: tuple[WeatherSample, ...] = field(default_factory=tuple)

    def require_baseline(self) -> Baseline:
        if self.baseline is None:
            raise InsufficientDataError(
                f"No baseline available for system '{self.record.system_id}'",
                required=self.config.minimum_data_points,
            )
        return self.baseline

    def closest_weather(self, within: timedelta) -> WeatherSample | None:
        return closest_weather(self.weather, self.record.timestamp, within)


class DetectionMethod(ABC):
    """
    Abstract detection strategy.

    Implementations raise InsufficientDataError when the inputs they depend on
    are missing; the orchestrator then skips them for this record only.
    """

    name: str

    @abstractmethod
    def detect(self, ctx: DetectionContext) -> list[AnomalyCandidate]:
        ...


class NoOpDetectionMethod(DetectionMethod):
    """
    Placeholder strategy that never reports anything.

    Registered for method names that are accepted in configuration but have
    no real implementation yet, so enabling them is harmless.
    """

    def __init__(self, name: str):
        self.name = name

    def detect(self, ctx: DetectionContext) -> list[AnomalyCandidate]:
        return []
