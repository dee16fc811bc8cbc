"""Models for the final display-ready report."""

from typing import Any

from pydantic import BaseModel, Field

from .enums import ReportType, SectionKind
from .timeline import DateRange


class ReportSection(BaseModel):
    heading: str = Field(..., description="Section heading")
    kind: SectionKind = Field(..., description="How a renderer should treat the content")
    content: Any = Field(None, description="Section payload, shape depends on kind")


class ReportChapter(BaseModel):
    title: str = Field(..., description="Chapter title")
    sections: list[ReportSection] = Field(default_factory=list)


class ReportMetadata(BaseModel):
    total_messages: int = Field(default=0, ge=0)
    date_range: DateRange = Field(default_factory=DateRange)
    senders: list[str] = Field(default_factory=list)
    overall_confidence: int = Field(default=0, ge=0, le=100)
    overall_health_score: int = Field(default=0, ge=0, le=100)


class Report(BaseModel):
    """Hierarchical report derived purely from a Timeline and its findings."""

    case_id: str = Field(..., description="Case the report belongs to")
    report_type: ReportType = Field(..., description="Baseline scan or deep analysis")
    chapters: list[ReportChapter] = Field(default_factory=list)
    metadata: ReportMetadata = Field(default_factory=ReportMetadata)
