"""Unit tests for the case state machine and progress reporting."""

import asyncio

import pytest

from subtext.models import CaseState
from subtext.pipeline import CaseStateMachine, ProgressReporter


class TestCaseStateMachine:

    def test_baseline_path(self):
        machine = CaseStateMachine()
        for state in (
            CaseState.RETRIEVING,
            CaseState.PARSING,
            CaseState.STITCHING,
            CaseState.TRIAGING,
            CaseState.FINALIZING,
            CaseState.COMPLETED,
        ):
            machine.transition(state)
        assert machine.state is CaseState.COMPLETED

    def test_deep_path(self):
        machine = CaseStateMachine()
        for state in (
            CaseState.RETRIEVING,
            CaseState.TRIAGING,
            CaseState.ANALYZING,
            CaseState.VERIFYING,
            CaseState.FINALIZING,
            CaseState.COMPLETED,
        ):
            machine.transition(state)
        assert machine.state is CaseState.COMPLETED

    @pytest.mark.parametrize("start,target", [
        (CaseState.QUEUED, CaseState.COMPLETED),
        (CaseState.QUEUED, CaseState.TRIAGING),
        (CaseState.PARSING, CaseState.TRIAGING),
        (CaseState.VERIFYING, CaseState.RESPONDING),
        (CaseState.COMPLETED, CaseState.FAILED),
        (CaseState.FAILED, CaseState.QUEUED),
    ])
    def test_illegal_transitions_raise(self, start, target):
        with pytest.raises(ValueError):
            CaseStateMachine(start).transition(target)

    @pytest.mark.parametrize("start", [CaseState.QUEUED, CaseState.STITCHING, CaseState.VERIFYING])
    def test_failed_reachable_from_non_terminal(self, start):
        assert CaseStateMachine(start).transition(CaseState.FAILED) is CaseState.FAILED


class TestProgressReporter:

    def test_progress_is_persisted_and_reported(self, repository):
        calls = []

        async def run():
            reporter = ProgressReporter("case-1", repository, lambda percent, label: calls.append((percent, label)))
            await reporter.advance(CaseState.RETRIEVING, 5, "Retrieving files")
            return await repository.get_progress("case-1")

        stored = asyncio.run(run())

        assert calls == [(5, "Retrieving files")]
        assert stored.percent == 5
        assert stored.state is CaseState.RETRIEVING

    def test_percent_never_decreases(self, repository):
        async def run():
            reporter = ProgressReporter("case-1", repository)
            await reporter.advance(CaseState.RETRIEVING, 40, "a")
            return await reporter.report(10, "b")

        assert asyncio.run(run()).percent == 40

    def test_resume_starts_from_persisted_percent(self, repository):
        seen = []

        async def callback(percent, label):
            seen.append(percent)

        async def run():
            first = ProgressReporter("case-1", repository)
            await first.advance(CaseState.RETRIEVING, 5, "a")
            await first.advance(CaseState.PARSING, 60, "b")

            retry = await ProgressReporter.resume("case-1", repository, callback)
            assert retry.state is CaseState.QUEUED
            await retry.advance(CaseState.RETRIEVING, 5, "again")

        asyncio.run(run())
        assert seen == [60]

    def test_percent_capped_at_100(self, repository):
        async def run():
            reporter = ProgressReporter("case-1", repository)
            await reporter.advance(CaseState.RETRIEVING, 150, "a")
            return reporter.percent

        assert asyncio.run(run()) == 100

    def test_illegal_advance_is_not_published(self, repository):
        async def run():
            reporter = ProgressReporter("case-1", repository)
            with pytest.raises(ValueError):
                await reporter.advance(CaseState.COMPLETED, 100, "done")
            return await repository.get_progress("case-1")

        assert asyncio.run(run()) is None
