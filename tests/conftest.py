"""
Pytest configuration and shared fixtures for pvwatch tests.
"""
from datetime import datetime, timezone

import pytest

from pvwatch.core.domain.anomaly import (
    Anomaly,
    AnomalyContext,
    AnomalyImpact,
    SeasonalContext,
    SystemContext,
    WeatherContext,
)
from pvwatch.core.domain.baseline import Baseline, BaselineStatistics, HourlyProfile, Percentiles
from pvwatch.core.domain.config import DetectionConfig
from pvwatch.core.domain.telemetry import (
    EnvironmentalConditions,
    PerformanceMetrics,
    ProductionMetrics,
    TelemetryRecord,
)

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )


def _stats(mean: float, std_dev: float) -> BaselineStatistics:
    return BaselineStatistics(
        mean=mean,
        median=mean,
        std_dev=std_dev,
        min=mean - 3 * std_dev,
        max=mean + 3 * std_dev,
        percentiles=Percentiles(p25=mean, p75=mean, p95=mean, p99=mean),
        count=200,
    )


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def make_record():
    """Factory for a healthy midday record; override any field by keyword."""
    def _make(
        system_id="sys-1",
        timestamp=T0,
        ac_power=5.0,
        dc_power=5.5,
        energy_delta=5.0,
        voltage=400.0,
        frequency=60.0,
        irradiance=800.0,
        performance_ratio=0.85,
        efficiency=18.0,
    ):
        return TelemetryRecord(
            system_id=system_id,
            timestamp=timestamp,
            production=ProductionMetrics(
                dc_power=dc_power,
                ac_power=ac_power,
                energy_delta=energy_delta,
                voltage=voltage,
                current=10.0,
                frequency=frequency,
            ),
            environmental=EnvironmentalConditions(irradiance=irradiance, ambient_temp=25.0, module_temp=40.0),
            performance=PerformanceMetrics(performance_ratio=performance_ratio, efficiency=efficiency),
        )
    return _make


@pytest.fixture
def baseline():
    """AC power 5.0±1.0 kW, PR 0.85±0.05, efficiency 18±1 %, noon profile 5.0±1.0."""
    return Baseline(
        system_id="sys-1",
        statistics=_stats(0.85, 0.05),
        metric_statistics={
            "ac_power": _stats(5.0, 1.0),
            "performance_ratio": _stats(0.85, 0.05),
            "efficiency": _stats(18.0, 1.0),
        },
        hourly_profiles={12: HourlyProfile(hour=12, mean=5.0, std_dev=1.0, samples=30)},
        window_days=30,
        data_points=200,
        built_at=T0,
    )


@pytest.fixture
def config():
    """Default detection config without exclusion rules."""
    return DetectionConfig(system_id="sys-1", exclude_conditions=[])


@pytest.fixture
def make_anomaly():
    def _make(anomaly_id="anomaly_1", system_id="sys-1", severity="warning", score=0.7, timestamp=T0, **kwargs):
        return Anomaly(
            id=anomaly_id,
            system_id=system_id,
            timestamp=timestamp,
            type="production_drop",
            category="production",
            severity=severity,
            score=score,
            confidence=0.9,
            description="AC power is a statistical outlier",
            detected_by=["statistical_outlier"],
            context=AnomalyContext(
                current_value=2.0,
                expected_value=5.0,
                seasonal=SeasonalContext(time_of_day=12, day_of_week=5, day_of_year=153),
                weather=WeatherContext(),
                system=SystemContext(
                    capacity_kw=10.0,
                    dc_power=2.2,
                    ac_power=2.0,
                    voltage=400.0,
                    frequency=60.0,
                    quality_confidence=1.0,
                ),
            ),
            impact=AnomalyImpact(production_loss=3.0),
            created_at=timestamp,
            **kwargs,
        )
    return _make
