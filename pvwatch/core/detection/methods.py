"""
Built-in detection methods.

Each class implements one strategy from the detection catalogue. Constants are
read from `DetectionConfig.tuning` and `DetectionConfig.thresholds` so they can
be tuned per system.
"""

import logging
from datetime import timedelta

from pvwatch.common.stats import linear_trend
from pvwatch.core.detection.base import (
    DetectionContext,
    DetectionMethod,
    NoOpDetectionMethod,
    severity_for,
    tier_for,
)
from pvwatch.core.domain.anomaly import AnomalyCandidate
from pvwatch.core.errors import InsufficientDataError

logger = logging.getLogger(__name__)

_TRACKED_METRICS = {
    "ac_power": "AC power",
    "performance_ratio": "Performance ratio",
    "efficiency": "System efficiency",
}


class StatisticalOutlierMethod(DetectionMethod):
    """Z-score of each tracked metric against the rolling baseline."""

    name = "statistical_outlier"

    def detect(self, ctx: DetectionContext) -> list[AnomalyCandidate]:
        baseline = ctx.require_baseline()
        threshold = ctx.config.tuning.z_score_threshold
        record = ctx.record
        candidates = []

        for metric, label in _TRACKED_METRICS.items():
            stats = baseline.for_metric(metric)
            if stats is None and metric == "performance_ratio":
                stats = baseline.statistics
            value = record.metric(metric)
            if stats is None or value is None or stats.std_dev <= 0:
                continue

            z = (value - stats.mean) / stats.std_dev
            if abs(z) <= threshold:
                continue

            tier = tier_for(abs(z), "statistical")
            if metric == "ac_power":
                anomaly_type = "production_drop" if z < 0 else "production_spike"
                category = "production"
                power_loss = max(0.0, stats.mean - value)
            else:
                anomaly_type = "efficiency_loss"
                category = "performance"
                power_loss = 0.0

            candidates.append(
                AnomalyCandidate(
                    system_id=record.system_id,
                    timestamp=record.timestamp,
                    type=anomaly_type,
                    category=category,
                    tier=tier,
                    severity=severity_for(tier),
                    score=abs(z) / (threshold * 1.5),
                    confidence=min(abs(z) / 3.0, 1.0),
                    method=self.name,
                    description=f"{label} is a statistical outlier (z-score {z:.2f})",
                    current_value=value,
                    expected_value=stats.mean,
                    deviation=z,
                    power_loss_kw=power_loss,
                    affected_components=["system"],
                    possible_causes=[
                        "Equipment degradation",
                        "Shading or soiling",
                        "Environmental conditions",
                        "Sensor malfunction",
                    ],
                )
            )
        return candidates


class ThresholdViolationMethod(DetectionMethod):
    """Direct comparison with fixed operating limits."""

    name = "threshold_analysis"

    def detect(self, ctx: DetectionContext) -> list[AnomalyCandidate]:
        limits = ctx.config.thresholds
        record = ctx.record
        production = record.production
        pr = record.performance.performance_ratio
        candidates = []

        pr_min = limits.performance_ratio.min
        if pr_min > 0 and pr < pr_min:
            shortfall = (pr_min - pr) / pr_min
            tier = tier_for(shortfall, "threshold")
            candidates.append(
                AnomalyCandidate(
                    system_id=record.system_id,
                    timestamp=record.timestamp,
                    type="efficiency_loss",
                    category="performance",
                    tier=tier,
                    severity=severity_for(tier),
                    score=0.5 + shortfall,
                    confidence=0.9,
                    method=self.name,
                    description=f"Performance ratio {pr:.3f} below minimum {pr_min:.3f}",
                    current_value=pr,
                    expected_value=pr_min,
                    deviation=shortfall,
                    affected_components=["system"],
                    possible_causes=["System degradation", "Shading", "Soiling", "Equipment fault"],
                )
            )

        voltage = production.voltage
        v_range = limits.voltage_range
        if not v_range.contains(voltage):
            bound = v_range.min if voltage < v_range.min else v_range.max
            excess = abs(voltage - bound) / bound if bound else 1.0
            critical = excess > limits.voltage_critical_margin
            tier = "critical" if critical else "high"
            candidates.append(
                AnomalyCandidate(
                    system_id=record.system_id,
                    timestamp=record.timestamp,
                    type="equipment_malfunction",
                    category="equipment_fault",
                    tier=tier,
                    severity=severity_for(tier),
                    score=1.0 if critical else 0.9,
                    confidence=0.95,
                    method=self.name,
                    description=f"Voltage outside normal range: {voltage:.1f} V",
                    current_value=voltage,
                    expected_value=bound,
                    deviation=voltage - bound,
                    affected_components=["inverter", "electrical_system"],
                    possible_causes=["Inverter malfunction", "Electrical connection issues", "Grid issues"],
                )
            )

        frequency = production.frequency
        f_range = limits.frequency_range
        if not f_range.contains(frequency):
            bound = f_range.min if frequency < f_range.min else f_range.max
            # Always critical: the inverter is at anti-islanding trip risk
            candidates.append(
                AnomalyCandidate(
                    system_id=record.system_id,
                    timestamp=record.timestamp,
                    type="power_quality_issue",
                    category="equipment_fault",
                    tier="critical",
                    severity="critical",
                    score=1.0,
                    confidence=0.98,
                    method=self.name,
                    description=f"Frequency outside acceptable range: {frequency:.2f} Hz",
                    current_value=frequency,
                    expected_value=bound,
                    deviation=frequency - bound,
                    affected_components=["inverter", "grid_connection"],
                    possible_causes=["Grid instability", "Inverter malfunction", "Anti-islanding activation"],
                )
            )

        return candidates


class TrendAnalysisMethod(DetectionMethod):
    """OLS slope of the most recent performance-ratio samples."""

    name = "trend_analysis"

    def detect(self, ctx: DetectionContext) -> list[AnomalyCandidate]:
        tuning = ctx.config.tuning
        window = tuning.trend_window
        if len(ctx.history) < window:
            raise InsufficientDataError(
                f"Trend analysis needs {window} samples",
                available=len(ctx.history),
                required=window,
            )

        recent = ctx.history[-window:]
        ratios = [r.performance.performance_ratio for r in recent]
        fit = linear_trend(ratios)
        if fit.slope >= tuning.trend_slope_threshold:
            return []

        record = ctx.record
        magnitude = abs(fit.slope)
        tier = tier_for(magnitude * 100, "trend")
        return [
            AnomalyCandidate(
                system_id=record.system_id,
                timestamp=record.timestamp,
                type="performance_degradation",
                category="performance",
                tier=tier,
                severity=severity_for(tier),
                score=0.5 + magnitude * 10,
                confidence=min(max(fit.r_squared, 0.0), 0.95),
                method=self.name,
                description=f"Declining performance trend: {fit.slope * 100:.2f}% per measurement",
                current_value=ratios[-1],
                expected_value=ratios[0],
                deviation=fit.slope,
                affected_components=["system"],
                possible_causes=["Panel degradation", "Accumulating soiling", "Component aging"],
            )
        ]


class ComparativeAnalysisMethod(DetectionMethod):
    """Actual AC output against the output the measured irradiance should give."""

    name = "comparative_analysis"

    def detect(self, ctx: DetectionContext) -> list[AnomalyCandidate]:
        tuning = ctx.config.tuning
        weather = ctx.closest_weather(timedelta(minutes=tuning.weather_match_minutes))
        if weather is None:
            return []

        capacity = ctx.config.system.capacity_kw
        expected = capacity * (weather.irradiance / 1000.0) * tuning.derating_factor
        if expected <= 0:
            return []

        record = ctx.record
        actual = record.production.ac_power
        shortfall = (expected - actual) / expected
        if shortfall <= tuning.comparative_deviation:
            return []

        tier = tier_for(shortfall, "comparative")
        return [
            AnomalyCandidate(
                system_id=record.system_id,
                timestamp=record.timestamp,
                type="weather_inconsistency",
                category="performance",
                tier=tier,
                severity=severity_for(tier),
                score=0.4 + shortfall,
                confidence=0.8,
                method=self.name,
                description=f"System underperforming: {shortfall * 100:.1f}% below expected for current weather",
                current_value=actual,
                expected_value=expected,
                deviation=shortfall,
                power_loss_kw=expected - actual,
                affected_components=["system"],
                possible_causes=["Shading", "Soiling", "Equipment issues", "Weather data mismatch"],
            )
        ]


class PhysicsInvariantMethod(DetectionMethod):
    """Measurements that cannot be physically true point at the data, not the plant."""

    name = "physics_based"

    def detect(self, ctx: DetectionContext) -> list[AnomalyCandidate]:
        tuning = ctx.config.tuning
        record = ctx.record
        production = record.production
        candidates = []

        ac_limit = production.dc_power * (1 + tuning.ac_dc_tolerance)
        if production.ac_power > ac_limit:
            excess = (
                (production.ac_power - production.dc_power) / production.dc_power
                if production.dc_power > 0
                else 1.0
            )
            candidates.append(
                AnomalyCandidate(
                    system_id=record.system_id,
                    timestamp=record.timestamp,
                    type="data_quality_issue",
                    category="data_anomaly",
                    tier="medium",
                    severity="warning",
                    score=0.7,
                    confidence=0.95,
                    method=self.name,
                    description="AC power exceeds DC power beyond measurement tolerance",
                    current_value=production.ac_power,
                    expected_value=ac_limit,
                    deviation=excess,
                    affected_components=["monitoring_system"],
                    possible_causes=["Measurement error", "Sensor calibration issue", "Data corruption"],
                )
            )

        efficiency = record.performance.efficiency
        if efficiency > tuning.max_efficiency_pct:
            candidates.append(
                AnomalyCandidate(
                    system_id=record.system_id,
                    timestamp=record.timestamp,
                    type="data_quality_issue",
                    category="data_anomaly",
                    tier="medium",
                    severity="warning",
                    score=0.65,
                    confidence=0.9,
                    method=self.name,
                    description=f"Efficiency exceeds physical limits: {efficiency:.1f}%",
                    current_value=efficiency,
                    expected_value=tuning.max_efficiency_pct,
                    deviation=efficiency - tuning.max_efficiency_pct,
                    affected_components=["monitoring_system"],
                    possible_causes=["Calculation error", "Sensor malfunction", "Data processing issue"],
                )
            )

        return candidates


class SeasonalProfileMethod(DetectionMethod):
    """AC power against the hour-of-day profile of the baseline."""

    name = "seasonal_anomaly"

    def detect(self, ctx: DetectionContext) -> list[AnomalyCandidate]:
        baseline = ctx.require_baseline()
        record = ctx.record
        hour = record.timestamp.hour
        profile = baseline.profile_for_hour(hour)
        # No samples (or no spread) for this hour means no seasonal signal
        if profile is None or profile.std_dev <= 0:
            return []

        value = record.production.ac_power
        sigmas = abs(value - profile.mean) / profile.std_dev
        if sigmas <= ctx.config.tuning.seasonal_sigma:
            return []

        tier = "critical" if sigmas > 3.0 else "high"
        return [
            AnomalyCandidate(
                system_id=record.system_id,
                timestamp=record.timestamp,
                type="seasonal_deviation",
                category="production",
                tier=tier,
                severity=severity_for(tier),
                score=sigmas / 3.0,
                confidence=min(sigmas / 3.0, 0.95),
                method=self.name,
                description=f"Production at hour {hour} deviates {sigmas:.1f} sigma from its seasonal profile",
                current_value=value,
                expected_value=profile.mean,
                deviation=sigmas,
                power_loss_kw=max(0.0, profile.mean - value),
                affected_components=["system"],
                possible_causes=["New shading", "Soiling", "Unusual weather"],
            )
        ]


def default_methods() -> dict[str, DetectionMethod]:
    """Registry of every method name a DetectionConfig may enable."""
    methods: list[DetectionMethod] = [
        StatisticalOutlierMethod(),
        ThresholdViolationMethod(),
        TrendAnalysisMethod(),
        ComparativeAnalysisMethod(),
        PhysicsInvariantMethod(),
        SeasonalProfileMethod(),
        NoOpDetectionMethod("pattern_recognition"),
    ]
    return {m.name: m for m in methods}
