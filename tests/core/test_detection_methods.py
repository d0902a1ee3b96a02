"""
Tests for the built-in detection methods.
"""
from datetime import timedelta

import pytest

from pvwatch.core.detection.base import DetectionContext, severity_for, tier_for
from pvwatch.core.detection.methods import (
    ComparativeAnalysisMethod,
    PhysicsInvariantMethod,
    SeasonalProfileMethod,
    StatisticalOutlierMethod,
    ThresholdViolationMethod,
    TrendAnalysisMethod,
    default_methods,
)
from pvwatch.core.domain.telemetry import WeatherSample
from pvwatch.core.errors import InsufficientDataError


def test_tier_mapping():
    assert tier_for(3.5, "statistical") == "critical"
    assert tier_for(2.7, "statistical") == "high"
    assert tier_for(1.0, "statistical") == "info"
    assert tier_for(0.05, "threshold") == "low"
    assert severity_for("high") == "warning"
    assert severity_for("medium") == "warning"
    assert severity_for("low") == "info"


# --- Statistical outlier ---

def test_statistical_outlier_z_four_is_critical(make_record, config, baseline):
    ctx = DetectionContext(record=make_record(ac_power=9.0), config=config, baseline=baseline)

    candidates = StatisticalOutlierMethod().detect(ctx)

    assert len(candidates) == 1
    c = candidates[0]
    assert c.type == "production_spike"
    assert c.deviation == pytest.approx(4.0)
    assert c.severity == "critical"
    assert c.confidence == 1.0
    assert c.score == 1.0


def test_statistical_outlier_drop_reports_power_loss(make_record, config, baseline):
    ctx = DetectionContext(record=make_record(ac_power=1.0), config=config, baseline=baseline)

    [c] = StatisticalOutlierMethod().detect(ctx)

    assert c.type == "production_drop"
    assert c.category == "production"
    assert c.power_loss_kw == pytest.approx(4.0)


def test_statistical_outlier_within_threshold(make_record, config, baseline):
    ctx = DetectionContext(record=make_record(ac_power=7.0), config=config, baseline=baseline)
    assert StatisticalOutlierMethod().detect(ctx) == []


def test_statistical_outlier_requires_baseline(make_record, config):
    ctx = DetectionContext(record=make_record(), config=config, baseline=None)
    with pytest.raises(InsufficientDataError):
        StatisticalOutlierMethod().detect(ctx)


# --- Threshold violation ---

@pytest.mark.parametrize("frequency", [48.5, 61.5, 62.0])
def test_frequency_out_of_range_is_critical(make_record, config, frequency):
    ctx = DetectionContext(record=make_record(frequency=frequency), config=config)

    [c] = ThresholdViolationMethod().detect(ctx)

    assert c.type == "power_quality_issue"
    assert c.category == "equipment_fault"
    assert c.severity == "critical"
    assert c.confidence >= 0.95


def test_voltage_margin_decides_severity(make_record, config):
    method = ThresholdViolationMethod()

    [far] = method.detect(DetectionContext(record=make_record(voltage=50.0), config=config))
    [near] = method.detect(DetectionContext(record=make_record(voltage=850.0), config=config))

    assert far.type == "equipment_malfunction"
    assert far.severity == "critical"
    assert near.severity == "warning"


def test_low_performance_ratio(make_record, config):
    ctx = DetectionContext(record=make_record(performance_ratio=0.3), config=config)

    [c] = ThresholdViolationMethod().detect(ctx)

    assert c.type == "efficiency_loss"
    assert c.category == "performance"
    assert c.deviation == pytest.approx(0.5)
    assert c.severity == "critical"


def test_healthy_record_has_no_threshold_violation(make_record, config):
    assert ThresholdViolationMethod().detect(DetectionContext(record=make_record(), config=config)) == []


# --- Physics invariants ---

@pytest.mark.parametrize(
    "ac_power, dc_power, flagged",
    [
        (1.0, 1.2, False),
        (1.04, 1.0, False),
        (1.3, 1.0, True),
    ],
)
def test_ac_above_dc(make_record, config, ac_power, dc_power, flagged):
    ctx = DetectionContext(record=make_record(ac_power=ac_power, dc_power=dc_power), config=config)

    candidates = PhysicsInvariantMethod().detect(ctx)

    assert bool(candidates) is flagged
    if flagged:
        assert candidates[0].type == "data_quality_issue"
        assert candidates[0].category == "data_anomaly"


def test_efficiency_above_physical_limit(make_record, config):
    ctx = DetectionContext(record=make_record(efficiency=31.0), config=config)

    [c] = PhysicsInvariantMethod().detect(ctx)

    assert c.type == "data_quality_issue"
    assert c.expected_value == 25.0


# --- Trend analysis ---

def _history(make_record, t0, ratios):
    return tuple(
        make_record(timestamp=t0 - timedelta(hours=len(ratios) - i), performance_ratio=pr)
        for i, pr in enumerate(ratios)
    )


def test_decreasing_trend_detected(make_record, config, t0):
    history = _history(make_record, t0, [0.9 - 0.02 * i for i in range(10)])
    ctx = DetectionContext(record=make_record(), config=config, history=history)

    [c] = TrendAnalysisMethod().detect(ctx)

    assert c.type == "performance_degradation"
    assert c.deviation == pytest.approx(-0.02)


@pytest.mark.parametrize("step", [0.0, 0.01])
def test_flat_or_increasing_trend_ignored(make_record, config, t0, step):
    history = _history(make_record, t0, [0.8 + step * i for i in range(10)])
    ctx = DetectionContext(record=make_record(), config=config, history=history)

    assert TrendAnalysisMethod().detect(ctx) == []


def test_trend_needs_full_window(make_record, config, t0):
    history = _history(make_record, t0, [0.9 - 0.02 * i for i in range(9)])
    ctx = DetectionContext(record=make_record(), config=config, history=history)

    with pytest.raises(InsufficientDataError):
        TrendAnalysisMethod().detect(ctx)


# --- Comparative analysis ---

def test_underperformance_against_weather(make_record, config, t0):
    weather = (WeatherSample(timestamp=t0 + timedelta(minutes=10), irradiance=1000.0),)
    ctx = DetectionContext(record=make_record(ac_power=4.0), config=config, weather=weather)

    [c] = ComparativeAnalysisMethod().detect(ctx)

    # 10 kW * 1000/1000 * 0.8 derating = 8 kW expected
    assert c.type == "weather_inconsistency"
    assert c.expected_value == pytest.approx(8.0)
    assert c.power_loss_kw == pytest.approx(4.0)
    assert c.severity == "critical"


def test_weather_outside_match_window_is_ignored(make_record, config, t0):
    weather = (WeatherSample(timestamp=t0 + timedelta(minutes=45), irradiance=1000.0),)
    ctx = DetectionContext(record=make_record(ac_power=1.0), config=config, weather=weather)

    assert ComparativeAnalysisMethod().detect(ctx) == []


def test_small_shortfall_is_not_reported(make_record, config, t0):
    weather = (WeatherSample(timestamp=t0, irradiance=1000.0),)
    ctx = DetectionContext(record=make_record(ac_power=7.0), config=config, weather=weather)

    assert ComparativeAnalysisMethod().detect(ctx) == []


# --- Seasonal profile ---

def test_seasonal_deviation(make_record, config, baseline):
    method = SeasonalProfileMethod()

    [strong] = method.detect(DetectionContext(record=make_record(ac_power=9.0), config=config, baseline=baseline))
    [mild] = method.detect(DetectionContext(record=make_record(ac_power=7.5), config=config, baseline=baseline))

    assert strong.type == "seasonal_deviation"
    assert strong.severity == "critical"
    assert mild.severity == "warning"


def test_seasonal_skips_hours_without_profile(make_record, config, baseline, t0):
    record = make_record(timestamp=t0 + timedelta(hours=3), ac_power=9.0)
    assert SeasonalProfileMethod().detect(DetectionContext(record=record, config=config, baseline=baseline)) == []


# --- All methods ---

@pytest.mark.parametrize(
    "overrides",
    [
        {},
        {"ac_power": 0.0},
        {"ac_power": 40.0, "dc_power": 1.0},
        {"performance_ratio": 0.0, "efficiency": 90.0},
        {"voltage": 0.0, "frequency": 0.0},
        {"voltage": 5000.0, "frequency": 120.0},
    ],
)
def test_scores_and_confidences_are_bounded(make_record, config, baseline, t0, overrides):
    weather = (WeatherSample(timestamp=t0, irradiance=1000.0),)
    history = _history(make_record, t0, [1.0 - 0.1 * i for i in range(10)])
    ctx = DetectionContext(
        record=make_record(**overrides),
        config=config,
        baseline=baseline,
        history=history,
        weather=weather,
    )

    for method in default_methods().values():
        for c in method.detect(ctx):
            assert 0.0 <= c.score <= 1.0
            assert 0.0 <= c.confidence <= 1.0


def test_pattern_recognition_is_a_no_op(make_record, config):
    method = default_methods()["pattern_recognition"]
    assert method.detect(DetectionContext(record=make_record(), config=config)) == []
