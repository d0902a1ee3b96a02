"""
Baseline Domain Models - Rolling statistics used by statistical detectors.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta


@dataclass(frozen=True)
class Percentiles:
    p25: float
    p75: float
    p95: float
    p99: float


@dataclass(frozen=True)
class BaselineStatistics:
    """Summary statistics of one metric series."""

    mean: float
    median: float
    std_dev: float  # population standard deviation
    min: float
    max: float
    percentiles: Percentiles
    count: int = 0


@dataclass(frozen=True)
class HourlyProfile:
    """Mean/std of AC power for one hour of the day."""

    hour: int
    mean: float
    std_dev: float
    samples: int


@dataclass(frozen=True)
class Baseline:
    """
    Rolling baseline for a system.

    `statistics` describes the performance-ratio series; `metric_statistics`
    holds the same summary for every tracked metric (ac_power,
    performance_ratio, efficiency). Hours without samples are absent from
    `hourly_profiles`.
    """

    system_id: str
    statistics: BaselineStatistics
    metric_statistics: dict[str, BaselineStatistics] = field(default_factory=dict)
    hourly_profiles: dict[int, HourlyProfile] = field(default_factory=dict)
    window_days: int = 30
    data_points: int = 0
    built_at: datetime | None = None

    def for_metric(self, name: str) -> BaselineStatistics | None:
        return self.metric_statistics.get(name)

    def profile_for_hour(self, hour: int) -> HourlyProfile | None:
        return self.hourly_profiles.get(hour)

    def is_stale(self, now: datetime) -> bool:
        if self.built_at is None:
            return True
        return now - self.built_at > timedelta(days=self.window_days)
