"""
Tests for the DetectionOrchestrator.
"""
import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from pvwatch.adapters.storage.memory import (
    InMemoryAnomalyRepository,
    InMemoryConfigStore,
    InMemoryTelemetryStore,
    InMemoryWeatherProvider,
)
from pvwatch.core.detection.base import DetectionMethod
from pvwatch.core.detection.methods import default_methods
from pvwatch.core.domain.config import DetectionConfig, ExclusionCondition
from pvwatch.core.domain.telemetry import WeatherSample
from pvwatch.core.ports.notifier import Notifier
from pvwatch.core.ports.telemetry_store import TelemetryStore
from pvwatch.core.services.baseline import BaselineService
from pvwatch.core.services.detection import DetectionOrchestrator


class ExplodingMethod(DetectionMethod):
    name = "physics_based"

    def detect(self, ctx):
        raise RuntimeError("sensor model crashed")


@pytest.fixture
def repository():
    return InMemoryAnomalyRepository()


@pytest.fixture
def notifier():
    return MagicMock(spec=Notifier)


@pytest.fixture
def make_orchestrator(repository, notifier, baseline):
    def _make(config=None, with_baseline=True, telemetry=None, weather=None, methods=None):
        configs = [config] if config is not None else []
        baselines = BaselineService(InMemoryTelemetryStore())
        if with_baseline:
            baselines.put(baseline)
        return DetectionOrchestrator(
            config_store=InMemoryConfigStore(configs),
            repository=repository,
            baselines=baselines,
            telemetry=telemetry,
            weather=weather,
            notifier=notifier,
            methods=methods,
        )
    return _make


@pytest.mark.asyncio
async def test_unconfigured_system_is_skipped(make_orchestrator, make_record):
    orchestrator = make_orchestrator()

    result = await orchestrator.detect("sys-1", make_record())

    assert result.skipped
    assert result.skip_reason == "not_configured"
    assert result.anomalies == []


@pytest.mark.asyncio
async def test_auto_configure_uses_defaults(make_orchestrator, make_record):
    orchestrator = make_orchestrator()
    orchestrator.auto_configure = True

    result = await orchestrator.detect("sys-1", make_record(frequency=62.0))

    assert not result.skipped
    assert [a.type for a in result.anomalies] == ["power_quality_issue"]


@pytest.mark.asyncio
async def test_disabled_system_is_skipped(make_orchestrator, make_record):
    orchestrator = make_orchestrator(DetectionConfig(system_id="sys-1", enabled=False))

    result = await orchestrator.detect("sys-1", make_record(frequency=62.0))

    assert result.skip_reason == "disabled"


@pytest.mark.asyncio
async def test_low_irradiance_is_excluded(make_orchestrator, make_record):
    orchestrator = make_orchestrator(DetectionConfig(system_id="sys-1"))

    result = await orchestrator.detect("sys-1", make_record(irradiance=40.0, frequency=62.0))

    assert result.skipped
    assert result.skip_reason == "excluded:weather"


@pytest.mark.asyncio
async def test_maintenance_window_is_excluded(make_orchestrator, make_record, t0):
    config = DetectionConfig(
        system_id="sys-1",
        exclude_conditions=[
            ExclusionCondition(
                type="maintenance",
                parameters={
                    "windows": [{"start": (t0 - timedelta(hours=1)).isoformat(), "end": t0.isoformat()}],
                    "buffer_hours": 1,
                },
            )
        ],
    )
    orchestrator = make_orchestrator(config)

    result = await orchestrator.detect("sys-1", make_record(timestamp=t0 + timedelta(minutes=30)))

    assert result.skip_reason == "excluded:maintenance"


@pytest.mark.asyncio
async def test_frequency_fault_becomes_critical_anomaly(make_orchestrator, make_record, config, repository, notifier):
    orchestrator = make_orchestrator(config)

    result = await orchestrator.detect("sys-1", make_record(frequency=62.0))

    assert not result.skipped
    assert not result.insufficient_data
    [anomaly] = result.anomalies
    assert anomaly.type == "power_quality_issue"
    assert anomaly.category == "equipment_fault"
    assert anomaly.severity == "critical"
    assert anomaly.status == "active"
    assert anomaly.id.startswith("anomaly_")
    assert anomaly.impact.urgency == "immediate"
    assert anomaly.context.system.frequency == 62.0
    assert anomaly.recommendations[0].priority in ("immediate", "high")
    assert await repository.get(anomaly.id) == anomaly
    notifier.anomalies_detected.assert_called_once_with("sys-1", result.anomalies)


@pytest.mark.asyncio
async def test_healthy_record_produces_nothing(make_orchestrator, make_record, config, notifier):
    orchestrator = make_orchestrator(config)

    result = await orchestrator.detect("sys-1", make_record())

    assert result.anomalies == []
    assert not result.skipped
    notifier.anomalies_detected.assert_not_called()


@pytest.mark.asyncio
async def test_missing_baseline_flags_insufficient_data(make_orchestrator, make_record, config):
    orchestrator = make_orchestrator(config, with_baseline=False)

    result = await orchestrator.detect("sys-1", make_record(frequency=62.0))

    assert result.insufficient_data
    assert not result.skipped
    # Baseline-free methods still run
    assert [a.type for a in result.anomalies] == ["power_quality_issue"]


@pytest.mark.asyncio
async def test_duplicate_candidates_are_merged(make_orchestrator, make_record, config):
    orchestrator = make_orchestrator(config)

    result = await orchestrator.detect("sys-1", make_record(performance_ratio=0.3))

    merged = [a for a in result.anomalies if a.type == "efficiency_loss"]
    assert len(merged) == 1
    assert set(merged[0].detected_by) == {"statistical_outlier", "threshold_analysis"}


@pytest.mark.asyncio
async def test_failing_method_does_not_abort_siblings(make_orchestrator, make_record, config):
    methods = default_methods()
    methods["physics_based"] = ExplodingMethod()
    orchestrator = make_orchestrator(config, methods=methods)

    result = await orchestrator.detect("sys-1", make_record(frequency=62.0))

    assert result.failed_methods == ["physics_based"]
    assert [a.type for a in result.anomalies] == ["power_quality_issue"]


@pytest.mark.asyncio
async def test_cooldown_suppresses_repeat_alerts(make_orchestrator, make_record, config, t0):
    orchestrator = make_orchestrator(config)

    first = await orchestrator.detect("sys-1", make_record(timestamp=t0, frequency=62.0))
    repeat = await orchestrator.detect("sys-1", make_record(timestamp=t0 + timedelta(minutes=5), frequency=62.0))
    later = await orchestrator.detect("sys-1", make_record(timestamp=t0 + timedelta(minutes=20), frequency=62.0))

    assert len(first.anomalies) == 1
    assert repeat.anomalies == []
    assert repeat.suppressed == 1
    assert len(later.anomalies) == 1


@pytest.mark.asyncio
async def test_hourly_cap(make_orchestrator, make_record, t0):
    config = DetectionConfig(system_id="sys-1", exclude_conditions=[])
    config.alert_thresholds.frequency.max_per_hour = 2
    config.alert_thresholds.frequency.cooldown_minutes = 0
    orchestrator = make_orchestrator(config)

    results = [
        await orchestrator.detect("sys-1", make_record(timestamp=t0 + timedelta(minutes=i), frequency=62.0))
        for i in range(3)
    ]

    assert [len(r.anomalies) for r in results] == [1, 1, 0]


@pytest.mark.asyncio
async def test_systems_do_not_share_rate_limits(make_orchestrator, make_record, t0):
    orchestrator = make_orchestrator(DetectionConfig(system_id="sys-1", exclude_conditions=[]))
    await orchestrator.config_store.save_config(DetectionConfig(system_id="sys-2", exclude_conditions=[]))

    one = await orchestrator.detect("sys-1", make_record(frequency=62.0))
    two = await orchestrator.detect("sys-2", make_record(system_id="sys-2", frequency=62.0))

    assert len(one.anomalies) == 1
    assert len(two.anomalies) == 1
    assert orchestrator.state_for("sys-1") is not orchestrator.state_for("sys-2")


def test_evaluate_is_deterministic(make_orchestrator, make_record, config, baseline):
    orchestrator = make_orchestrator(config)
    record = make_record(ac_power=9.0, performance_ratio=0.4, frequency=62.0)

    def summary():
        evaluation = orchestrator.evaluate(record, config, baseline=baseline)
        return [(c.type, c.score, c.severity, tuple(c.detected_by)) for c, _ in evaluation.accepted]

    assert summary() == summary()
    assert summary()


@pytest.mark.asyncio
async def test_recent_history_is_seeded_for_trend_analysis(make_orchestrator, make_record, config, t0):
    telemetry = InMemoryTelemetryStore()
    telemetry.ingest_many([
        make_record(timestamp=t0 - timedelta(hours=10 - i), performance_ratio=0.9 - 0.02 * i)
        for i in range(10)
    ])
    orchestrator = make_orchestrator(config, telemetry=telemetry)

    result = await orchestrator.detect("sys-1", make_record())

    assert "performance_degradation" in [a.type for a in result.anomalies]
    assert len(orchestrator.state_for("sys-1").recent) == 11


@pytest.mark.asyncio
async def test_weather_feed_drives_comparative_analysis(make_orchestrator, make_record, config, t0):
    weather = InMemoryWeatherProvider()
    weather.add(WeatherSample(timestamp=t0 + timedelta(minutes=5), irradiance=1000.0, cloud_cover=0.1))
    orchestrator = make_orchestrator(config, weather=weather)

    result = await orchestrator.detect("sys-1", make_record(ac_power=4.0, dc_power=4.4))

    [anomaly] = [a for a in result.anomalies if a.type == "weather_inconsistency"]
    assert anomaly.context.weather.cloud_cover == 0.1
    assert anomaly.impact.production_loss == pytest.approx(4.0)


@pytest.mark.asyncio
async def test_orchestrator_failure_returns_empty_result(make_record):
    config_store = MagicMock()
    config_store.get_config = AsyncMock(side_effect=RuntimeError("config backend down"))
    orchestrator = DetectionOrchestrator(
        config_store=config_store,
        repository=InMemoryAnomalyRepository(),
        baselines=BaselineService(InMemoryTelemetryStore()),
    )

    result = await orchestrator.detect("sys-1", make_record())

    assert result.skipped
    assert result.skip_reason == "error"
    assert result.anomalies == []


@pytest.mark.asyncio
async def test_concurrent_first_records_share_seeded_history(make_orchestrator, make_record, config, t0):
    seeded = [
        make_record(timestamp=t0 - timedelta(hours=10 - i), performance_ratio=0.9 - 0.02 * i)
        for i in range(10)
    ]

    async def slow_history(system_id, start, end):
        await asyncio.sleep(0.01)
        return seeded

    telemetry = MagicMock(spec=TelemetryStore)
    telemetry.history = AsyncMock(side_effect=slow_history)
    orchestrator = make_orchestrator(config, telemetry=telemetry)

    first, second = await asyncio.gather(
        orchestrator.detect("sys-1", make_record(timestamp=t0, performance_ratio=0.7)),
        orchestrator.detect("sys-1", make_record(timestamp=t0 + timedelta(minutes=5), performance_ratio=0.68)),
    )

    recent = [r.timestamp for r in orchestrator.state_for("sys-1").recent]
    assert telemetry.history.await_count == 1
    assert len(recent) == 12
    assert recent == sorted(recent)
    assert not first.skipped and not second.skipped


@pytest.mark.asyncio
async def test_naive_record_against_aware_history(make_orchestrator, make_record, config, t0):
    telemetry = InMemoryTelemetryStore()
    telemetry.ingest_many([make_record(timestamp=t0 - timedelta(hours=i)) for i in range(1, 4)])
    orchestrator = make_orchestrator(config, telemetry=telemetry)

    result = await orchestrator.detect("sys-1", make_record(timestamp=t0.replace(tzinfo=None), frequency=62.0))

    assert not result.skipped
    assert [a.type for a in result.anomalies] == ["power_quality_issue"]
    assert result.anomalies[0].timestamp == t0
    assert len(orchestrator.state_for("sys-1").recent) == 4
