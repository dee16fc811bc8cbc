"""Relationship health scoring from clinician and triage findings."""

from pydantic import BaseModel

from subtext.models import ClinicianFinding, TriageFinding


class HealthWeights(BaseModel):
    """Per-behavior multipliers and caps for the health score.

    Each horseman subtracts ``frequency_per_1000 * weight`` up to its cap;
    successful repairs add back ``success_rate * repair_weight`` up to
    ``repair_cap``.
    """

    criticism_weight: float = 2.0
    criticism_cap: float = 25.0
    contempt_weight: float = 3.0
    contempt_cap: float = 30.0
    defensiveness_weight: float = 1.5
    defensiveness_cap: float = 20.0
    stonewalling_weight: float = 2.0
    stonewalling_cap: float = 25.0
    repair_weight: float = 0.2
    repair_cap: float = 15.0


DEFAULT_WEIGHTS = HealthWeights()


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def behavior_percentile(frequency_per_1000: float) -> int:
    """Bucket a per-1000 frequency into a rough population percentile."""
    if frequency_per_1000 < 5:
        return 25
    if frequency_per_1000 < 10:
        return 50
    if frequency_per_1000 < 20:
        return 75
    return 95


def health_score(finding: ClinicianFinding, weights: HealthWeights = DEFAULT_WEIGHTS) -> int:
    """Overall health score in 0-100 from Four Horsemen frequencies."""
    score = 100.0
    score -= _clamp(finding.criticism.frequency_per_1000 * weights.criticism_weight, 0, weights.criticism_cap)
    score -= _clamp(finding.contempt.frequency_per_1000 * weights.contempt_weight, 0, weights.contempt_cap)
    score -= _clamp(
        finding.defensiveness.frequency_per_1000 * weights.defensiveness_weight, 0, weights.defensiveness_cap
    )
    score -= _clamp(
        finding.stonewalling.frequency_per_1000 * weights.stonewalling_weight, 0, weights.stonewalling_cap
    )
    score += _clamp(finding.repair_attempts.success_rate * weights.repair_weight, 0, weights.repair_cap)
    return int(_clamp(round(score), 0, 100))


def baseline_health_score(finding: TriageFinding) -> int:
    """Health proxy for a baseline scan: the inverse of hidden aggression."""
    aggression = finding.hidden_aggression_score or 0
    return int(_clamp(round(100 - aggression), 0, 100))


def risk_level(score: float) -> str:
    if score >= 70:
        return "Secure"
    if score >= 40:
        return "Moderate"
    return "High Risk"


def flag_severity(confidence: float) -> str:
    if confidence >= 80:
        return "high"
    if confidence >= 60:
        return "medium"
    return "low"
