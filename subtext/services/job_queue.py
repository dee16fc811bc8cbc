"""In-process job carrier.

``JobQueue`` holds pending analysis jobs and their status records.
``WorkerPool`` runs a fixed number of asyncio workers that pull jobs and run
them with exponential-backoff retries. Only retryable failures are retried;
once a job fails for good, the final-failure hook is awaited.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from subtext.config import Settings, get_settings
from subtext.errors import is_retryable
from subtext.models import JobPayload, JobRecord, JobState
from subtext.models.cases import utcnow
from subtext.services.storage import generate_id

logger = structlog.get_logger(__name__)

# (payload, progress reporter) -> None
JobProcessor = Callable[[JobPayload, Callable[[int, str], Awaitable[None]]], Awaitable[None]]
FinalFailureHook = Callable[[JobPayload, BaseException], Awaitable[None]]


class JobQueue:
    """FIFO of job ids plus the status record of every job seen."""

    def __init__(self):
        self._pending: asyncio.Queue[str] = asyncio.Queue()
        self._jobs: dict[str, JobRecord] = {}

    async def enqueue(self, payload: JobPayload) -> str:
        job_id = generate_id()
        self._jobs[job_id] = JobRecord(job_id=job_id, payload=payload)
        await self._pending.put(job_id)
        logger.info(
            "job_enqueued",
            job_id=job_id,
            case_id=payload.case_id,
            analysis_kind=payload.analysis_kind.value,
        )
        return job_id

    async def next_job(self) -> JobRecord:
        job_id = await self._pending.get()
        return self._jobs[job_id]

    def task_done(self) -> None:
        self._pending.task_done()

    async def join(self) -> None:
        await self._pending.join()

    def get_job_status(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    def update(self, job_id: str, **changes) -> JobRecord:
        record = self._jobs[job_id].model_copy(update=changes)
        self._jobs[job_id] = record
        return record

    def update_progress(self, job_id: str, percent: int) -> JobRecord:
        current = self._jobs[job_id].progress
        return self.update(job_id, progress=max(current, percent))


class WorkerPool:
    """Fixed-size pool of workers draining a JobQueue."""

    def __init__(
        self,
        queue: JobQueue,
        processor: JobProcessor,
        settings: Optional[Settings] = None,
        on_final_failure: Optional[FinalFailureHook] = None,
    ):
        self.queue = queue
        self.processor = processor
        self.settings = settings or get_settings()
        self.on_final_failure = on_final_failure
        self._workers: list[asyncio.Task] = []

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"subtext-worker-{n}")
            for n in range(self.settings.worker_concurrency)
        ]
        logger.info("worker_pool_started", workers=len(self._workers))

    async def stop(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("worker_pool_stopped")

    async def run_until_idle(self) -> None:
        """Start the workers, wait for the queue to drain, then stop."""
        self.start()
        try:
            await self.queue.join()
        finally:
            await self.stop()

    async def _worker(self, number: int) -> None:
        while True:
            job = await self.queue.next_job()
            try:
                await self.run_job(job)
            except Exception as e:
                # run_job already recorded the failure
                logger.debug("worker_job_failed", worker=number, job_id=job.job_id, error=str(e))
            finally:
                self.queue.task_done()

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.settings.job_max_attempts),
            wait=wait_exponential(
                multiplier=self.settings.job_backoff_seconds,
                max=self.settings.job_backoff_max_seconds,
            ),
            retry=retry_if_exception(is_retryable),
            before_sleep=self._log_retry,
            reraise=True,
        )

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "job_retry_scheduled",
            attempt=retry_state.attempt_number,
            wait_seconds=round(retry_state.next_action.sleep, 2) if retry_state.next_action else 0,
            error=str(exc),
        )

    async def run_job(self, job: JobRecord) -> None:
        """Run one job to completion or final failure.

        Raises:
            Exception: The last error once the job has failed for good.
        """
        job_id = job.job_id
        payload = job.payload

        async def report_progress(percent: int, label: str) -> None:
            self.queue.update_progress(job_id, percent)

        try:
            async for attempt in self._retrying():
                with attempt:
                    number = attempt.retry_state.attempt_number
                    self.queue.update(job_id, state=JobState.ACTIVE, attempts=number)
                    logger.info("job_attempt_start", job_id=job_id, case_id=payload.case_id, attempt=number)
                    await self.processor(payload, report_progress)
        except Exception as e:
            self.queue.update(job_id, state=JobState.FAILED, error=str(e), finished_at=utcnow())
            logger.error(
                "job_failed",
                job_id=job_id,
                case_id=payload.case_id,
                attempts=self.queue.get_job_status(job_id).attempts,
                retryable=is_retryable(e),
                error=str(e),
                error_type=type(e).__name__,
            )
            if self.on_final_failure is not None:
                await self.on_final_failure(payload, e)
            raise

        self.queue.update(job_id, state=JobState.COMPLETED, progress=100, error=None, finished_at=utcnow())
        logger.info("job_completed", job_id=job_id, case_id=payload.case_id)
