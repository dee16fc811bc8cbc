"""
Pipeline Runner Service

Binds the job carrier to the orchestrator.

Design Decisions:
- One job per case; the job payload only names the case and its tier
- Job progress mirrors the orchestrator's progress callback
- The orchestrator never marks a case failed; this module does, once the
  carrier has given up on the job
- Raw error detail stays in the logs, the case record gets the short message
"""

from typing import Awaitable, Callable, Optional

import structlog

from subtext.config import Settings, get_settings
from subtext.errors import user_message_for
from subtext.models import CaseState, CaseStatus, JobPayload, ProgressUpdate
from subtext.pipeline import PipelineOrchestrator
from subtext.services.case_store import CaseNotFoundError, CaseRecordStore
from subtext.services.job_queue import JobQueue, WorkerPool
from subtext.services.repository import CaseRepository

logger = structlog.get_logger(__name__)


class PipelineRunner:
    """Queue-backed runner for analysis cases."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        repository: CaseRepository,
        case_store: CaseRecordStore,
        queue: Optional[JobQueue] = None,
        settings: Optional[Settings] = None,
    ):
        self.orchestrator = orchestrator
        self.repository = repository
        self.case_store = case_store
        self.settings = settings or get_settings()
        self.queue = queue or JobQueue()
        self.pool = WorkerPool(
            self.queue,
            self.process_job,
            settings=self.settings,
            on_final_failure=self.mark_failed,
        )

    async def submit(self, payload: JobPayload) -> str:
        """Queue a case for processing and return the job id."""
        return await self.queue.enqueue(payload)

    async def process_job(
        self,
        payload: JobPayload,
        report_progress: Callable[[int, str], Awaitable[None]],
    ) -> None:
        await self.orchestrator.process(
            payload.case_id,
            payload.analysis_kind,
            progress_callback=report_progress,
        )

    async def mark_failed(self, payload: JobPayload, exc: BaseException) -> None:
        """Final-failure hook: record the failure on the case and its progress."""
        if isinstance(exc, CaseNotFoundError):
            logger.error("case_failed_without_record", case_id=payload.case_id, error=str(exc))
            return

        message = user_message_for(exc)
        await self.case_store.update_status(payload.case_id, CaseStatus.FAILED, message)

        previous = await self.repository.get_progress(payload.case_id)
        await self.repository.save_progress(
            payload.case_id,
            ProgressUpdate(
                percent=previous.percent if previous else 0,
                stage_label=message,
                state=CaseState.FAILED,
            ),
        )
        logger.error(
            "case_failed",
            case_id=payload.case_id,
            analysis_kind=payload.analysis_kind.value,
            user_message=message,
        )

    async def run_until_idle(self) -> None:
        await self.pool.run_until_idle()
