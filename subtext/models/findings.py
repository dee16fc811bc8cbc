"""Structured findings produced by each analysis stage.

Each finding is a tagged record: the literal ``stage`` field identifies the
producing stage, so findings round-trip through the artifact store as a
discriminated union.

Reasoning-service output is loose, so these models are lenient: unknown keys
are ignored, percentages are clamped into 0-100, and every field has a
neutral default. A finding built from ``{}`` is the "empty" finding a stage
falls back to when the service returns nothing usable.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _clamp_percent(value: Any) -> Any:
    if value is None:
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return value
    return max(0.0, min(100.0, number))


def _clamp_optional_percent(value: Any) -> Any:
    if value is None:
        return None
    return _clamp_percent(value)


def _coerce_indices(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, (int, str)):
        value = [value]
    indices = []
    for item in value:
        try:
            indices.append(int(item))
        except (TypeError, ValueError):
            continue
    return indices


Percent = Annotated[float, BeforeValidator(_clamp_percent)]
OptionalPercent = Annotated[Optional[float], BeforeValidator(_clamp_optional_percent)]
MessageIndices = Annotated[list[int], BeforeValidator(_coerce_indices)]


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


# =============================================================================
# Triage
# =============================================================================

class HotZone(_Lenient):
    """A localized sub-range of the timeline that needs deep analysis."""

    start_index: int = 0
    end_index: int = 0
    intensity_score: float = 0.0
    brief_summary: str = ""
    indicators: list[str] = Field(default_factory=list)


class RedFlag(_Lenient):
    type: str = "unspecified"
    description: str = ""
    confidence: Percent = 0
    message_indices: MessageIndices = Field(default_factory=list)


class TriageFinding(_Lenient):
    stage: Literal["triage"] = "triage"

    hot_zones: list[HotZone] = Field(default_factory=list)
    red_flags: list[RedFlag] = Field(default_factory=list)
    total_messages_scanned: int = 0

    # Populated by the quick (single-message) variant and the baseline scan
    tone: Optional[str] = None
    tone_score: OptionalPercent = None
    hidden_aggression_score: OptionalPercent = None
    summary: Optional[str] = None
    quick: bool = False


# =============================================================================
# Specialist A: Clinician
# =============================================================================

class BehaviorExample(_Lenient):
    index: int = 0
    quote: str = ""
    explanation: str = ""
    severity: str = "low"


class BehaviorTally(_Lenient):
    count: int = 0
    examples: list[BehaviorExample] = Field(default_factory=list)
    frequency_per_1000: int = 0
    percentile: int = 0


class RepairExample(_Lenient):
    index: int = 0
    quote: str = ""
    outcome: str = ""


class RepairSummary(_Lenient):
    count: int = 0
    success_rate: int = 0
    examples: list[RepairExample] = Field(default_factory=list)


class ClinicianFinding(_Lenient):
    stage: Literal["clinician"] = "clinician"

    criticism: BehaviorTally = Field(default_factory=BehaviorTally)
    contempt: BehaviorTally = Field(default_factory=BehaviorTally)
    defensiveness: BehaviorTally = Field(default_factory=BehaviorTally)
    stonewalling: BehaviorTally = Field(default_factory=BehaviorTally)
    repair_attempts: RepairSummary = Field(default_factory=RepairSummary)
    messages_examined: int = 0
    overall_health_score: int = 50


# =============================================================================
# Specialist B: Pattern Matcher
# =============================================================================

class DetectedPattern(_Lenient):
    name: str = ""
    detected: bool = False
    confidence: Percent = 0
    evidence: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


class AttachmentAssessment(_Lenient):
    style: str = "unknown"
    confidence: Percent = 0


class InteractionLoop(_Lenient):
    type: str = ""
    description: str = ""
    frequency: int = 0
    typical_trigger: str = ""
    typical_resolution: str = ""


class SenderStats(_Lenient):
    count: int = 0
    total_chars: int = 0
    avg_length: int = 0


class LatencyProfile(_Lenient):
    avg_minutes: float = 0.0
    pattern: str = "unknown"


class PronounUsage(_Lenient):
    i_count: int = 0
    we_count: int = 0
    ratio: float = 0.0


def _default_attachment() -> dict[str, AttachmentAssessment]:
    return {"person_a": AttachmentAssessment(), "person_b": AttachmentAssessment()}


class PatternFinding(_Lenient):
    stage: Literal["pattern_matcher"] = "pattern_matcher"

    patterns: list[DetectedPattern] = Field(default_factory=list)
    attachment_style: dict[str, AttachmentAssessment] = Field(default_factory=_default_attachment)
    interaction_loops: list[InteractionLoop] = Field(default_factory=list)

    # Computed locally from the timeline, never by the reasoning service
    sender_stats: dict[str, SenderStats] = Field(default_factory=dict)
    latency_analysis: dict[str, LatencyProfile] = Field(default_factory=dict)
    pronoun_analysis: dict[str, PronounUsage] = Field(default_factory=dict)


# =============================================================================
# Specialist C: Historian
# =============================================================================

class HistoricalEvent(_Lenient):
    date: str = ""
    event_type: str = ""
    description: str = ""
    significance: str = "low"
    message_indices: MessageIndices = Field(default_factory=list)


class RecurringTheme(_Lenient):
    theme: str = ""
    description: str = ""
    first_occurrence: str = ""
    frequency: int = 0
    resolution_status: str = "unresolved"


class TurningPoint(_Lenient):
    date: str = ""
    description: str = ""
    impact: str = ""
    before_dynamic: str = ""
    after_dynamic: str = ""


class TrajectoryPhase(_Lenient):
    period: str = ""
    characterization: str = ""
    sentiment: str = ""


class Trajectory(_Lenient):
    overall: str = "stable"
    confidence: Percent = 0
    description: str = "Insufficient data for trajectory analysis"
    phases: list[TrajectoryPhase] = Field(default_factory=list)


class ReferenceLink(_Lenient):
    current_reference: str = ""
    original_event: str = ""
    pattern: str = ""


class HistorianFinding(_Lenient):
    stage: Literal["historian"] = "historian"

    event_timeline: list[HistoricalEvent] = Field(default_factory=list)
    recurring_themes: list[RecurringTheme] = Field(default_factory=list)
    turning_points: list[TurningPoint] = Field(default_factory=list)
    trajectory: Trajectory = Field(default_factory=Trajectory)
    reference_web: list[ReferenceLink] = Field(default_factory=list)


# =============================================================================
# Verifier
# =============================================================================

class VerifiedClaim(_Lenient):
    """A specialist claim after cross-checking against the raw timeline."""

    claim: str = ""
    agent: str = ""
    evidence: str = ""
    confidence: Percent = 0
    message_indices: MessageIndices = Field(default_factory=list)
    quotes: list[str] = Field(default_factory=list)

    corroborating_instances: int = 0
    evidence_band: Literal["low", "medium", "high"] = "low"
    veto: bool = False
    veto_reason: Optional[str] = None


class VerifierFinding(_Lenient):
    stage: Literal["verifier"] = "verifier"

    verified_findings: list[VerifiedClaim] = Field(default_factory=list)
    vetoed_findings: list[VerifiedClaim] = Field(default_factory=list)
    overall_confidence: int = 0
    methodology_notes: list[str] = Field(default_factory=list)


# =============================================================================
# Request/response stages
# =============================================================================

class AnswerFinding(_Lenient):
    stage: Literal["answer"] = "answer"

    question: str = ""
    answer: str = ""
    cited_indices: MessageIndices = Field(default_factory=list)


class ReplySuggestionFinding(_Lenient):
    stage: Literal["reply_suggestion"] = "reply_suggestion"

    screenshot_text: str = ""
    recommended_reply: str = ""
    rationale: str = ""
    alternatives: list[str] = Field(default_factory=list)


StageFinding = Annotated[
    Union[
        TriageFinding,
        ClinicianFinding,
        PatternFinding,
        HistorianFinding,
        VerifierFinding,
        AnswerFinding,
        ReplySuggestionFinding,
    ],
    Field(discriminator="stage"),
]


class FindingSet(BaseModel):
    """All findings available to the report assembler for one case."""

    triage: Optional[TriageFinding] = None
    clinician: Optional[ClinicianFinding] = None
    pattern_matcher: Optional[PatternFinding] = None
    historian: Optional[HistorianFinding] = None
    verifier: Optional[VerifierFinding] = None

    @property
    def is_deep(self) -> bool:
        return None not in (self.clinician, self.pattern_matcher, self.historian, self.verifier)
