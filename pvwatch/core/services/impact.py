"""
Impact estimation and threshold filtering of detection candidates.
"""

from pvwatch.core.domain.anomaly import AnomalyCandidate, AnomalyImpact
from pvwatch.core.domain.config import AlertThresholds, ImpactModel


def estimate_impact(candidate: AnomalyCandidate, model: ImpactModel) -> AnomalyImpact:
    """Production, efficiency, financial and CO2 impact over the expected duration."""
    hours = model.expected_duration_minutes / 60.0
    production_loss = max(0.0, candidate.power_loss_kw) * hours

    if candidate.severity == "critical":
        urgency = "immediate"
    elif candidate.severity == "warning":
        urgency = "within_hour" if candidate.category == "equipment_fault" else "within_day"
    else:
        urgency = "planned"

    return AnomalyImpact(
        production_loss=production_loss,
        efficiency_drop=candidate.score * 5,
        financial_impact=production_loss * model.energy_price,
        environmental_impact=production_loss * model.emission_factor,
        duration=model.expected_duration_minutes,
        urgency=urgency,
    )


def passes_thresholds(candidate: AnomalyCandidate, impact: AnomalyImpact, thresholds: AlertThresholds) -> bool:
    """
    Keep a candidate whose score reaches its severity's threshold and whose
    impact clears at least one of the impact minimums.
    """
    if candidate.score < thresholds.severity.for_severity(candidate.severity):
        return False

    minimums = thresholds.impact
    return (
        impact.production_loss >= minimums.min_production_loss
        or impact.efficiency_drop >= minimums.min_efficiency_drop
        or impact.financial_impact >= minimums.min_financial_impact
    )


def consolidate(candidates: list[AnomalyCandidate]) -> list[AnomalyCandidate]:
    """
    Merge candidates sharing (type, category, timestamp).

    The highest-scoring candidate wins; `detected_by` becomes the union of
    all merged methods. First-seen order is preserved.
    """
    merged: dict[tuple, AnomalyCandidate] = {}
    for candidate in candidates:
        key = candidate.dedup_key
        existing = merged.get(key)
        if existing is None:
            merged[key] = candidate
            continue

        methods = list(dict.fromkeys(existing.detected_by + candidate.detected_by))
        winner = candidate if candidate.score > existing.score else existing
        winner.detected_by = methods
        merged[key] = winner
    return list(merged.values())
