"""Models for case records, progress and queued jobs."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from .enums import AnalysisKind, CaseState, CaseStatus, JobState


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CaseRecord(BaseModel):
    """Business record for one analysis request."""

    case_id: str = Field(description="Unique case identifier")
    conversation_id: str = Field(description="Conversation the case analyses")
    analysis_kind: AnalysisKind
    status: CaseStatus = CaseStatus.QUEUED
    error_message: Optional[str] = Field(
        None, description="Short user-facing failure message"
    )
    source_case_id: Optional[str] = Field(
        None, description="Completed baseline case a follow-up analysis builds on"
    )
    question: Optional[str] = Field(
        None, description="Question text for question cases"
    )
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


class ProgressUpdate(BaseModel):
    percent: int = Field(ge=0, le=100)
    stage_label: str
    state: CaseState
    updated_at: datetime = Field(default_factory=utcnow)


class JobPayload(BaseModel):
    case_id: str
    analysis_kind: AnalysisKind


class JobRecord(BaseModel):
    job_id: str
    payload: JobPayload
    state: JobState = JobState.WAITING
    progress: int = 0
    attempts: int = 0
    error: Optional[str] = None
    enqueued_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
