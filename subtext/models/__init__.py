"""Pydantic models shared across ingestion, stages and reporting."""

from .cases import CaseRecord, JobPayload, JobRecord, ProgressUpdate
from .enums import (
    AnalysisKind,
    CaseState,
    CaseStatus,
    JobState,
    ReportType,
    SectionKind,
    StageName,
)
from .findings import (
    AnswerFinding,
    BehaviorExample,
    BehaviorTally,
    ClinicianFinding,
    DetectedPattern,
    FindingSet,
    HistorianFinding,
    HotZone,
    PatternFinding,
    RedFlag,
    RepairExample,
    RepairSummary,
    ReplySuggestionFinding,
    StageFinding,
    TriageFinding,
    VerifiedClaim,
    VerifierFinding,
)
from .messages import RawMessage, TimelineMessage, UploadedFile
from .report import Report, ReportChapter, ReportMetadata, ReportSection
from .timeline import DateRange, GapRecord, Timeline, TimelineStats

__all__ = [
    # Enums
    "AnalysisKind",
    "CaseState",
    "CaseStatus",
    "JobState",
    "ReportType",
    "SectionKind",
    "StageName",
    # Ingestion
    "UploadedFile",
    "RawMessage",
    "TimelineMessage",
    # Timeline
    "DateRange",
    "GapRecord",
    "Timeline",
    "TimelineStats",
    # Findings
    "AnswerFinding",
    "BehaviorExample",
    "BehaviorTally",
    "ClinicianFinding",
    "DetectedPattern",
    "FindingSet",
    "HistorianFinding",
    "HotZone",
    "PatternFinding",
    "RedFlag",
    "RepairExample",
    "RepairSummary",
    "ReplySuggestionFinding",
    "StageFinding",
    "TriageFinding",
    "VerifiedClaim",
    "VerifierFinding",
    # Report
    "Report",
    "ReportChapter",
    "ReportMetadata",
    "ReportSection",
    # Cases
    "CaseRecord",
    "JobPayload",
    "JobRecord",
    "ProgressUpdate",
]
