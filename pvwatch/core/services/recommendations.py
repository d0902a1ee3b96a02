"""
Recommendation catalogue - Fixed follow-up actions per anomaly type.
"""

from pvwatch.core.domain.anomaly import (
    Anomaly,
    AnomalyRecommendation,
    AnomalySeverity,
    SystemRecommendation,
)

_PRIORITY_RANK = {"immediate": 0, "high": 1, "medium": 2, "low": 3}


def _rec(action, priority, category, cost, minutes, benefit, skills) -> AnomalyRecommendation:
    return AnomalyRecommendation(
        action=action,
        priority=priority,
        category=category,
        estimated_cost=cost,
        estimated_time=minutes,
        expected_benefit=benefit,
        required_skills=skills,
    )


CATALOGUE: dict[str, list[AnomalyRecommendation]] = {
    "production_drop": [
        _rec("Inspect system for shading or soiling", "high", "inspection", 100, 60,
             "Restore 5-10% production", ["basic_maintenance"]),
        _rec("Review inverter event log", "medium", "monitoring", 0, 20,
             "Rule out inverter derating", ["data_analysis"]),
    ],
    "production_spike": [
        _rec("Verify meter and sensor readings", "medium", "monitoring", 50, 30,
             "Confirm measurement accuracy", ["data_analysis"]),
    ],
    "efficiency_loss": [
        _rec("Check inverter performance and connections", "medium", "inspection", 150, 90,
             "Improve efficiency by 2-5%", ["electrical"]),
        _rec("Clean panels", "low", "maintenance", 120, 120,
             "Recover soiling losses", ["basic_maintenance"]),
    ],
    "equipment_malfunction": [
        _rec("Immediate equipment inspection required", "immediate", "repair", 300, 120,
             "Restore full system operation", ["electrical", "certified_technician"]),
    ],
    "weather_inconsistency": [
        _rec("Verify weather data and system response", "medium", "monitoring", 50, 30,
             "Improve detection accuracy", ["data_analysis"]),
        _rec("Inspect array for obstructions", "medium", "inspection", 100, 60,
             "Remove unexpected shading", ["basic_maintenance"]),
    ],
    "performance_degradation": [
        _rec("Schedule comprehensive performance assessment", "medium", "maintenance", 200, 180,
             "Identify degradation causes", ["performance_analysis"]),
    ],
    "communication_loss": [
        _rec("Check monitoring system connectivity", "high", "repair", 100, 45,
             "Restore monitoring capability", ["networking"]),
    ],
    "power_quality_issue": [
        _rec("Analyze power quality and grid connection", "high", "inspection", 250, 120,
             "Improve power quality", ["electrical", "power_quality"]),
        _rec("Contact utility about grid stability", "immediate", "monitoring", 0, 15,
             "Confirm whether the fault is upstream", ["customer_service"]),
    ],
    "seasonal_deviation": [
        _rec("Review seasonal patterns and expectations", "low", "monitoring", 0, 15,
             "Update seasonal models", ["data_analysis"]),
    ],
    "peer_comparison_outlier": [
        _rec("Compare with peer system performance", "low", "monitoring", 50, 30,
             "Identify improvement opportunities", ["performance_analysis"]),
    ],
    "predictive_failure": [
        _rec("Schedule preventive maintenance", "medium", "maintenance", 200, 120,
             "Prevent equipment failure", ["preventive_maintenance"]),
    ],
    "data_quality_issue": [
        _rec("Verify sensor calibration", "medium", "inspection", 80, 45,
             "Restore trustworthy measurements", ["electrical"]),
        _rec("Check data processing pipeline", "low", "monitoring", 0, 30,
             "Rule out calculation errors", ["data_analysis"]),
    ],
}


def recommendations_for(anomaly_type: str, severity: AnomalySeverity) -> list[AnomalyRecommendation]:
    """
    Catalogue entries for a type, most urgent first.

    Critical anomalies raise every entry to at least `high` priority.
    """
    entries = [r.model_copy() for r in CATALOGUE.get(anomaly_type, [])]
    if severity == "critical":
        for r in entries:
            if _PRIORITY_RANK[r.priority] > _PRIORITY_RANK["high"]:
                r.priority = "high"
    return sorted(entries, key=lambda r: (_PRIORITY_RANK[r.priority], r.estimated_cost))


def system_recommendations(anomalies: list[Anomaly]) -> list[SystemRecommendation]:
    """Advice about the detector itself, based on one run's accepted anomalies."""
    result = []
    if len(anomalies) > 10:
        result.append(
            SystemRecommendation(
                type="threshold_adjustment",
                description="Consider adjusting anomaly detection sensitivity",
                priority="medium",
                impact="Reduce false positives",
            )
        )
    if sum(1 for a in anomalies if a.severity == "critical") > 2:
        result.append(
            SystemRecommendation(
                type="maintenance_scheduling",
                description="Schedule immediate system inspection",
                priority="high",
                impact="Address critical issues",
            )
        )
    return result
