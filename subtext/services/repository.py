"""Typed artifact repository keyed by (case_id, ArtifactKind).

The repository owns key layout and retention; callers deal only in models.
"""

from enum import Enum
from typing import Optional

import structlog
from pydantic import TypeAdapter

from subtext.config import Settings, get_settings
from subtext.models import (
    FindingSet,
    ProgressUpdate,
    Report,
    StageFinding,
    StageName,
    Timeline,
    UploadedFile,
)
from subtext.services.storage import ArtifactStore

logger = structlog.get_logger(__name__)

_FINDING_ADAPTER = TypeAdapter(StageFinding)


class ArtifactKind(str, Enum):
    FILES = "files"
    TIMELINE = "timeline"
    FINDING = "finding"
    REPORT = "report"
    PROGRESS = "progress"


class CaseRepository:
    """Per-case artifacts with retention by kind.

    Reports outlive everything else; the rest is working state that expires
    after the ephemeral TTL.
    """

    def __init__(self, store: ArtifactStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()

    def ttl_for(self, kind: ArtifactKind) -> int:
        if kind is ArtifactKind.REPORT:
            return self.settings.report_ttl_seconds
        return self.settings.ephemeral_ttl_seconds

    @staticmethod
    def key_for(case_id: str, kind: ArtifactKind, name: Optional[str] = None) -> str:
        key = f"cases/{case_id}/{kind.value}"
        return f"{key}/{name}" if name else key

    # -------------------------------------------------------------------------
    # Staged files
    # -------------------------------------------------------------------------

    async def stage_files(self, case_id: str, files: list[UploadedFile]) -> None:
        await self.store.put(
            self.key_for(case_id, ArtifactKind.FILES),
            [f.model_dump() for f in files],
            self.ttl_for(ArtifactKind.FILES),
        )

    async def get_files(self, case_id: str) -> list[UploadedFile]:
        data = await self.store.get(self.key_for(case_id, ArtifactKind.FILES))
        return [UploadedFile.model_validate(item) for item in data or []]

    async def clear_files(self, case_id: str) -> None:
        await self.store.delete_by_prefix(self.key_for(case_id, ArtifactKind.FILES))

    # -------------------------------------------------------------------------
    # Timeline
    # -------------------------------------------------------------------------

    async def save_timeline(self, case_id: str, timeline: Timeline) -> None:
        await self.store.put(
            self.key_for(case_id, ArtifactKind.TIMELINE),
            timeline.model_dump(mode="json"),
            self.ttl_for(ArtifactKind.TIMELINE),
        )

    async def get_timeline(self, case_id: str) -> Optional[Timeline]:
        data = await self.store.get(self.key_for(case_id, ArtifactKind.TIMELINE))
        return Timeline.model_validate(data) if data is not None else None

    # -------------------------------------------------------------------------
    # Findings
    # -------------------------------------------------------------------------

    async def save_finding(self, case_id: str, finding: StageFinding) -> None:
        """Store a finding under its own stage, overwriting earlier runs."""
        await self.store.put(
            self.key_for(case_id, ArtifactKind.FINDING, finding.stage),
            finding.model_dump(mode="json"),
            self.ttl_for(ArtifactKind.FINDING),
        )
        logger.debug("finding_saved", case_id=case_id, stage=finding.stage)

    async def get_finding(self, case_id: str, stage: StageName) -> Optional[StageFinding]:
        data = await self.store.get(self.key_for(case_id, ArtifactKind.FINDING, stage.value))
        return _FINDING_ADAPTER.validate_python(data) if data is not None else None

    async def get_findings(self, case_id: str) -> FindingSet:
        """All report-relevant findings persisted for a case."""
        return FindingSet(
            triage=await self.get_finding(case_id, StageName.TRIAGE),
            clinician=await self.get_finding(case_id, StageName.CLINICIAN),
            pattern_matcher=await self.get_finding(case_id, StageName.PATTERN_MATCHER),
            historian=await self.get_finding(case_id, StageName.HISTORIAN),
            verifier=await self.get_finding(case_id, StageName.VERIFIER),
        )

    # -------------------------------------------------------------------------
    # Report and progress
    # -------------------------------------------------------------------------

    async def save_report(self, case_id: str, report: Report) -> None:
        await self.store.put(
            self.key_for(case_id, ArtifactKind.REPORT),
            report.model_dump(mode="json"),
            self.ttl_for(ArtifactKind.REPORT),
        )

    async def get_report(self, case_id: str) -> Optional[Report]:
        data = await self.store.get(self.key_for(case_id, ArtifactKind.REPORT))
        return Report.model_validate(data) if data is not None else None

    async def save_progress(self, case_id: str, progress: ProgressUpdate) -> None:
        await self.store.put(
            self.key_for(case_id, ArtifactKind.PROGRESS),
            progress.model_dump(mode="json"),
            self.ttl_for(ArtifactKind.PROGRESS),
        )

    async def get_progress(self, case_id: str) -> Optional[ProgressUpdate]:
        data = await self.store.get(self.key_for(case_id, ArtifactKind.PROGRESS))
        return ProgressUpdate.model_validate(data) if data is not None else None

    async def clear_case(self, case_id: str) -> int:
        """Remove every artifact of a case."""
        return await self.store.delete_by_prefix(f"cases/{case_id}/")
