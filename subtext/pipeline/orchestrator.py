"""Pipeline orchestrator - drives one case through its tier of stages.

Every tier reads its inputs from the case repository and writes each
finding back as soon as the producing stage succeeds. A retried run
therefore restarts the tier against whatever the previous attempt
persisted; re-running a stage simply overwrites its finding.

Tiers:
- baseline: ingestion (extract -> stitch) then a single triage pass
- deep: triage, three concurrent specialists, then the verifier
- question / reply_suggestion: one responder stage over prior context
"""

import asyncio
from typing import Any, Awaitable, Optional, TypeVar

import structlog

from subtext.config import Settings, get_settings
from subtext.errors import InputError, PreconditionError
from subtext.extraction import RawContentExtractor
from subtext.llm import ReasoningService
from subtext.models import (
    AnalysisKind,
    CaseRecord,
    CaseState,
    CaseStatus,
    HotZone,
    Report,
    StageName,
    Timeline,
)
from subtext.pipeline.stages import (
    AnswerStage,
    ClinicianStage,
    HistorianStage,
    PatternMatcherStage,
    ReplySuggestionStage,
    TriageStage,
    VerifierStage,
)
from subtext.pipeline.state import ProgressCallback, ProgressReporter
from subtext.processing import TimelineStitcher
from subtext.report import assemble
from subtext.services.case_store import CaseNotFoundError, CaseRecordStore
from subtext.services.repository import CaseRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PipelineOrchestrator:
    """Runs analysis cases end to end."""

    def __init__(
        self,
        repository: CaseRepository,
        case_store: CaseRecordStore,
        reasoning: ReasoningService,
        extractor: Optional[RawContentExtractor] = None,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.case_store = case_store
        self.settings = settings or get_settings()
        self.extractor = extractor or RawContentExtractor(settings=self.settings)
        self.stitcher = TimelineStitcher(self.settings)

        self.triage = TriageStage(reasoning, self.settings)
        self.clinician = ClinicianStage(reasoning, self.settings)
        self.pattern_matcher = PatternMatcherStage(reasoning, self.settings)
        self.historian = HistorianStage(reasoning, self.settings)
        self.verifier = VerifierStage(reasoning, self.settings)
        self.answer = AnswerStage(reasoning, self.settings)
        self.reply = ReplySuggestionStage(reasoning, self.settings)

    async def process(
        self,
        case_id: str,
        analysis_kind: Optional[AnalysisKind] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> CaseRecord:
        """Run one attempt of a case.

        Failures propagate unchanged; marking the case as failed is left to
        the job carrier, which knows whether another attempt will follow.

        Args:
            case_id: Case to run.
            analysis_kind: Tier to run. Defaults to the kind on the case record.
            progress_callback: Called with (percent, label) on every update.

        Returns:
            The completed case record.
        """
        case = await self.case_store.get(case_id)
        if case is None:
            raise CaseNotFoundError(case_id)
        kind = analysis_kind or case.analysis_kind

        await self.case_store.update_status(case_id, CaseStatus.PROCESSING)
        progress = await ProgressReporter.resume(case_id, self.repository, progress_callback)

        logger.info("case_processing_start", case_id=case_id, analysis_kind=kind.value)

        if kind is AnalysisKind.BASELINE:
            await self._run_baseline(case, progress)
        elif kind is AnalysisKind.DEEP:
            await self._run_deep(case, progress)
        elif kind is AnalysisKind.QUESTION:
            await self._run_question(case, progress)
        else:
            await self._run_reply_suggestion(case, progress)

        await progress.advance(CaseState.COMPLETED, 100, "Complete")
        record = await self.case_store.update_status(case_id, CaseStatus.COMPLETED)

        logger.info("case_processing_complete", case_id=case_id, analysis_kind=kind.value)
        return record

    async def _run_stage(self, case_id: str, stage: StageName, call: Awaitable[T]) -> T:
        """Await a stage call, logging its boundary with case and stage."""
        logger.info("stage_start", case_id=case_id, stage=stage.value)
        try:
            result = await call
        except Exception as e:
            logger.error(
                "stage_failed",
                case_id=case_id,
                stage=stage.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        logger.info("stage_complete", case_id=case_id, stage=stage.value)
        return result

    # =========================================================================
    # Tier 1: baseline
    # =========================================================================

    async def _run_baseline(self, case: CaseRecord, progress: ProgressReporter) -> None:
        case_id = case.case_id
        await progress.advance(CaseState.RETRIEVING, 5, "Retrieving files")

        timeline = await self.repository.get_timeline(case_id)
        if timeline is None:
            timeline = await self._ingest(case_id, progress)
        else:
            logger.info("timeline_reused", case_id=case_id, total_count=timeline.total_count)

        await progress.advance(CaseState.TRIAGING, 40, "Scanning conversation")
        if timeline.total_count == 1:
            triage = await self._run_stage(
                case_id, StageName.TRIAGE, self.triage.run_quick(timeline.combined_text)
            )
        else:
            triage = await self._run_stage(case_id, StageName.TRIAGE, self.triage.run(timeline))
        await self.repository.save_finding(case_id, triage)
        await progress.report(70, "Scan complete")

        await progress.advance(CaseState.FINALIZING, 90, "Building report")
        findings = await self.repository.get_findings(case_id)
        await self.repository.save_report(case_id, assemble(case_id, timeline, findings))
        await self.repository.clear_files(case_id)

    async def _ingest(self, case_id: str, progress: ProgressReporter) -> Timeline:
        files = await self.repository.get_files(case_id)
        if not files:
            raise InputError(f"No files staged for case {case_id}")

        await progress.advance(CaseState.PARSING, 10, "Reading messages")
        messages = self.extractor.extract_all(files)

        await progress.advance(CaseState.STITCHING, 20, "Building timeline")
        timeline = self.stitcher.stitch(messages)
        await self.repository.save_timeline(case_id, timeline)
        return timeline

    # =========================================================================
    # Tier 2: deep
    # =========================================================================

    async def _baseline_case(self, case: CaseRecord) -> Optional[CaseRecord]:
        if not case.source_case_id:
            return await self.case_store.find_completed(case.conversation_id, AnalysisKind.BASELINE)

        source = await self.case_store.get(case.source_case_id)
        if (
            source is None
            or source.conversation_id != case.conversation_id
            or source.analysis_kind != AnalysisKind.BASELINE
            or source.status != CaseStatus.COMPLETED
        ):
            logger.warning(
                "source_case_rejected",
                case_id=case.case_id,
                source_case_id=case.source_case_id,
                conversation_id=case.conversation_id,
            )
            return None
        return source

    async def _baseline_timeline(self, case: CaseRecord) -> tuple[CaseRecord, Timeline]:
        """Completed baseline case and its timeline for a follow-up case.

        Raises:
            PreconditionError: If there is no completed baseline or its
                timeline is no longer stored.
        """
        baseline = await self._baseline_case(case)
        if baseline is None:
            if case.source_case_id:
                raise PreconditionError(
                    f"Case {case.source_case_id} is not a completed baseline for conversation {case.conversation_id}"
                )
            raise PreconditionError(
                f"No completed baseline for conversation {case.conversation_id}"
            )
        timeline = await self.repository.get_timeline(baseline.case_id)
        if timeline is None:
            raise PreconditionError(f"Timeline for baseline case {baseline.case_id} has expired")
        return baseline, timeline

    async def _run_deep(self, case: CaseRecord, progress: ProgressReporter) -> None:
        case_id = case.case_id
        await progress.advance(CaseState.RETRIEVING, 10, "Loading timeline")
        _, timeline = await self._baseline_timeline(case)

        if timeline.total_count < self.settings.deep_min_messages:
            raise PreconditionError(
                f"Deep analysis needs at least {self.settings.deep_min_messages} messages, "
                f"got {timeline.total_count}",
                user_message=(
                    f"Deep analysis needs at least {self.settings.deep_min_messages} messages."
                ),
            )

        # The report reads the timeline under this case id
        await self.repository.save_timeline(case_id, timeline)

        await progress.advance(CaseState.TRIAGING, 30, "Locating hot zones")
        triage = await self._run_stage(case_id, StageName.TRIAGE, self.triage.run(timeline))
        await self.repository.save_finding(case_id, triage)

        await progress.advance(CaseState.ANALYZING, 40, "Running specialists")
        clinician, patterns, historian = await self._run_specialists(case_id, timeline, triage.hot_zones)
        await progress.report(60, "Specialists complete")

        await progress.advance(CaseState.VERIFYING, 70, "Verifying findings")
        verifier = await self._run_stage(
            case_id,
            StageName.VERIFIER,
            self.verifier.run(timeline, clinician, patterns, historian),
        )
        await self.repository.save_finding(case_id, verifier)

        await progress.advance(CaseState.FINALIZING, 80, "Building report")
        findings = await self.repository.get_findings(case_id)
        await self.repository.save_report(case_id, assemble(case_id, timeline, findings))

    async def _run_specialists(
        self, case_id: str, timeline: Timeline, hot_zones: list[HotZone]
    ) -> list[Any]:
        """Run the three specialists concurrently.

        Each specialist persists its finding as soon as it succeeds. Once all
        have settled the first failure, if any, is re-raised.
        """

        async def run_and_save(stage: StageName, call: Awaitable[Any]) -> Any:
            finding = await self._run_stage(case_id, stage, call)
            await self.repository.save_finding(case_id, finding)
            return finding

        results = await asyncio.gather(
            run_and_save(StageName.CLINICIAN, self.clinician.run(timeline, hot_zones)),
            run_and_save(StageName.PATTERN_MATCHER, self.pattern_matcher.run(timeline)),
            run_and_save(StageName.HISTORIAN, self.historian.run(timeline)),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.warning(
                "specialists_partial_failure",
                case_id=case_id,
                failed=len(failures),
                succeeded=len(results) - len(failures),
            )
            raise failures[0]
        return list(results)

    # =========================================================================
    # Request/response tiers
    # =========================================================================

    async def _run_question(self, case: CaseRecord, progress: ProgressReporter) -> None:
        case_id = case.case_id
        await progress.advance(CaseState.RETRIEVING, 10, "Loading conversation")
        baseline, timeline = await self._baseline_timeline(case)
        report = await self.repository.get_report(baseline.case_id)

        question = (case.question or "").strip()
        if not question:
            raise InputError(f"Case {case_id} has no question", user_message="Please ask a question.")

        await progress.advance(CaseState.ANALYZING, 30, "Reading conversation")
        await progress.advance(CaseState.RESPONDING, 50, "Answering")
        answer = await self._run_stage(
            case_id, StageName.ANSWER, self.answer.run(question, timeline, report)
        )
        await self.repository.save_finding(case_id, answer)

        await progress.advance(CaseState.FINALIZING, 90, "Saving answer")

    async def _run_reply_suggestion(self, case: CaseRecord, progress: ProgressReporter) -> None:
        case_id = case.case_id
        await progress.advance(CaseState.RETRIEVING, 10, "Reading screenshot")

        files = await self.repository.get_files(case_id)
        messages = [
            m for m in self.extractor.extract_all(files)
            if not m.extraction_failed and not m.tags.get("ocr_empty")
        ]
        screenshot_text = "\n".join(m.content for m in messages).strip()
        if not screenshot_text:
            raise InputError(
                f"No readable text in screenshot for case {case_id}",
                user_message="We could not read any text from the screenshot.",
            )

        await progress.advance(CaseState.ANALYZING, 30, "Loading context")
        report = await self._context_report(case)

        await progress.advance(CaseState.RESPONDING, 60, "Drafting reply")
        suggestion = await self._run_stage(
            case_id, StageName.REPLY_SUGGESTION, self.reply.run(screenshot_text, report)
        )
        await self.repository.save_finding(case_id, suggestion)

        await progress.advance(CaseState.FINALIZING, 90, "Saving suggestion")
        await self.repository.clear_files(case_id)

    async def _context_report(self, case: CaseRecord) -> Optional[Report]:
        baseline = await self._baseline_case(case)
        if baseline is None:
            return None
        return await self.repository.get_report(baseline.case_id)
