"""Report assembly and scoring."""

from .assembler import assemble
from .scoring import HealthWeights, behavior_percentile, health_score, risk_level

__all__ = ["HealthWeights", "assemble", "behavior_percentile", "health_score", "risk_level"]
