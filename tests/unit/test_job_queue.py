"""Unit tests for the job carrier and the pipeline runner."""

import asyncio

from conftest import FakeReasoningService
from subtext.errors import InputError, UpstreamError
from subtext.models import AnalysisKind, CaseRecord, CaseState, CaseStatus, JobPayload, JobState
from subtext.pipeline import PipelineOrchestrator
from subtext.services import JobQueue, WorkerPool
from subtext.services.pipeline_runner import PipelineRunner


def _payload(case_id="c1") -> JobPayload:
    return JobPayload(case_id=case_id, analysis_kind=AnalysisKind.BASELINE)


class ScriptedProcessor:
    """Raises the scripted errors in order, then succeeds."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self, payload, report_progress):
        self.calls += 1
        await report_progress(10 * self.calls, "working")
        if self.errors:
            raise self.errors.pop(0)


def _run_jobs(processor, settings, payloads, on_final_failure=None):
    async def run():
        queue = JobQueue()
        pool = WorkerPool(queue, processor, settings, on_final_failure)
        job_ids = [await queue.enqueue(p) for p in payloads]
        await pool.run_until_idle()
        return [queue.get_job_status(job_id) for job_id in job_ids]

    return asyncio.run(run())


class TestWorkerPool:

    def test_successful_job(self, settings):
        processor = ScriptedProcessor()
        (job,) = _run_jobs(processor, settings, [_payload()])

        assert job.state is JobState.COMPLETED
        assert job.attempts == 1
        assert job.progress == 100
        assert job.finished_at is not None

    def test_upstream_errors_are_retried(self, settings):
        processor = ScriptedProcessor(UpstreamError("timeout"), UpstreamError("timeout"))
        (job,) = _run_jobs(processor, settings, [_payload()])

        assert job.state is JobState.COMPLETED
        assert job.attempts == 3
        assert processor.calls == 3

    def test_input_errors_are_not_retried(self, settings):
        failures = []

        async def on_failure(payload, exc):
            failures.append((payload.case_id, exc))

        processor = ScriptedProcessor(InputError("nothing to read"))
        (job,) = _run_jobs(processor, settings, [_payload()], on_failure)

        assert job.state is JobState.FAILED
        assert job.attempts == 1
        assert job.error == "nothing to read"
        assert processor.calls == 1
        assert failures[0][0] == "c1"
        assert isinstance(failures[0][1], InputError)

    def test_attempts_are_bounded(self, settings):
        failures = []

        async def on_failure(payload, exc):
            failures.append(exc)

        processor = ScriptedProcessor(*[UpstreamError("down")] * 5)
        (job,) = _run_jobs(processor, settings, [_payload()], on_failure)

        assert job.state is JobState.FAILED
        assert job.attempts == settings.job_max_attempts
        assert processor.calls == 3
        assert len(failures) == 1

    def test_unknown_errors_are_retried(self, settings):
        processor = ScriptedProcessor(RuntimeError("flaky"))
        (job,) = _run_jobs(processor, settings, [_payload()])

        assert job.state is JobState.COMPLETED
        assert job.attempts == 2

    def test_many_jobs(self, settings):
        payloads = [_payload(f"c{n}") for n in range(12)]
        jobs = _run_jobs(ScriptedProcessor(), settings, payloads)

        assert all(job.state is JobState.COMPLETED for job in jobs)

    def test_progress_never_decreases(self):
        async def run():
            queue = JobQueue()
            job_id = await queue.enqueue(_payload())
            queue.update_progress(job_id, 40)
            return queue.update_progress(job_id, 20)

        assert asyncio.run(run()).progress == 40


class TestPipelineRunner:

    def test_final_failure_marks_case(self, settings, repository, case_store):
        reasoning = FakeReasoningService()
        orchestrator = PipelineOrchestrator(repository, case_store, reasoning, settings=settings)

        async def run():
            runner = PipelineRunner(orchestrator, repository, case_store, settings=settings)
            await case_store.create(CaseRecord(case_id="deep", conversation_id="conv-1", analysis_kind=AnalysisKind.DEEP))
            job_id = await runner.submit(JobPayload(case_id="deep", analysis_kind=AnalysisKind.DEEP))
            await runner.run_until_idle()
            return (
                runner.queue.get_job_status(job_id),
                await case_store.get("deep"),
                await repository.get_progress("deep"),
            )

        job, record, progress = asyncio.run(run())

        assert job.attempts == 1
        assert record.status is CaseStatus.FAILED
        assert record.error_message == "Run the baseline analysis first."
        assert progress.state is CaseState.FAILED
        assert progress.percent == 10
        assert reasoning.calls == []

    def test_successful_case(self, settings, repository, case_store, build_timeline):
        orchestrator = PipelineOrchestrator(repository, case_store, FakeReasoningService(), settings=settings)

        async def run():
            runner = PipelineRunner(orchestrator, repository, case_store, settings=settings)
            await case_store.create(CaseRecord(case_id="c1", conversation_id="conv-1", analysis_kind=AnalysisKind.BASELINE))
            await repository.save_timeline("c1", build_timeline(5))
            job_id = await runner.submit(JobPayload(case_id="c1", analysis_kind=AnalysisKind.BASELINE))
            await runner.run_until_idle()
            return runner.queue.get_job_status(job_id), await case_store.get("c1")

        job, record = asyncio.run(run())

        assert job.state is JobState.COMPLETED
        assert job.progress == 100
        assert record.status is CaseStatus.COMPLETED

    def test_unknown_case_is_not_retried(self, settings, repository, case_store):
        reasoning = FakeReasoningService()
        orchestrator = PipelineOrchestrator(repository, case_store, reasoning, settings=settings)

        async def run():
            runner = PipelineRunner(orchestrator, repository, case_store, settings=settings)
            job_id = await runner.submit(JobPayload(case_id="missing", analysis_kind=AnalysisKind.BASELINE))
            await runner.run_until_idle()
            return runner.queue.get_job_status(job_id), await repository.get_progress("missing")

        job, progress = asyncio.run(run())

        assert job.state is JobState.FAILED
        assert job.attempts == 1
        assert progress is None
        assert reasoning.calls == []
