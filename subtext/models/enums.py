"""Enumeration types for the pipeline models."""

from enum import Enum


class AnalysisKind(str, Enum):
    """Kinds of analysis request a case can carry."""

    BASELINE = "baseline"
    DEEP = "deep"
    QUESTION = "question"
    REPLY_SUGGESTION = "reply_suggestion"


class StageName(str, Enum):
    """Identity of each analysis stage (also the finding storage key)."""

    TRIAGE = "triage"
    CLINICIAN = "clinician"
    PATTERN_MATCHER = "pattern_matcher"
    HISTORIAN = "historian"
    VERIFIER = "verifier"
    ANSWER = "answer"
    REPLY_SUGGESTION = "reply_suggestion"


class CaseStatus(str, Enum):
    """Coarse status on the case record, polled by callers."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CaseState(str, Enum):
    """Fine-grained orchestrator state for a single run."""

    QUEUED = "queued"
    RETRIEVING = "retrieving"
    PARSING = "parsing"
    STITCHING = "stitching"
    TRIAGING = "triaging"
    ANALYZING = "analyzing"
    VERIFYING = "verifying"
    RESPONDING = "responding"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


class SectionKind(str, Enum):
    """Typed report sections so a renderer can treat them generically."""

    TEXT = "text"
    SCORE = "score"
    LIST = "list"
    TABLE = "table"
    CHART_DATA = "chart_data"
    TIMELINE_EVENT = "timeline_event"


class ReportType(str, Enum):
    BASELINE = "baseline"
    DEEP = "deep"


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
