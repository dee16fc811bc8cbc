"""Case state machine and progress reporting for one orchestrator run."""

import inspect
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from subtext.models import CaseState, ProgressUpdate
from subtext.services.repository import CaseRepository

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, str], Union[None, Awaitable[None]]]

TERMINAL_STATES = frozenset({CaseState.COMPLETED, CaseState.FAILED})

# FAILED is reachable from every non-terminal state and is added below.
TRANSITIONS: dict[CaseState, frozenset[CaseState]] = {
    CaseState.QUEUED: frozenset({CaseState.RETRIEVING}),
    CaseState.RETRIEVING: frozenset({
        CaseState.PARSING,
        CaseState.TRIAGING,  # baseline retry with a persisted timeline, or deep
        CaseState.ANALYZING,  # question and reply suggestion
    }),
    CaseState.PARSING: frozenset({CaseState.STITCHING}),
    CaseState.STITCHING: frozenset({CaseState.TRIAGING}),
    CaseState.TRIAGING: frozenset({CaseState.ANALYZING, CaseState.FINALIZING}),
    CaseState.ANALYZING: frozenset({CaseState.VERIFYING, CaseState.RESPONDING}),
    CaseState.VERIFYING: frozenset({CaseState.FINALIZING}),
    CaseState.RESPONDING: frozenset({CaseState.FINALIZING}),
    CaseState.FINALIZING: frozenset({CaseState.COMPLETED}),
    CaseState.COMPLETED: frozenset(),
    CaseState.FAILED: frozenset(),
}


class CaseStateMachine:
    """Tracks the current state of a case and rejects illegal moves."""

    def __init__(self, state: CaseState = CaseState.QUEUED):
        self.state = state

    def can_transition(self, target: CaseState) -> bool:
        if target is CaseState.FAILED:
            return self.state not in TERMINAL_STATES
        return target in TRANSITIONS[self.state]

    def transition(self, target: CaseState) -> CaseState:
        """Move to target.

        Raises:
            ValueError: If the move is not allowed from the current state.
        """
        if not self.can_transition(target):
            raise ValueError(f"Illegal case transition {self.state.value} -> {target.value}")
        self.state = target
        return self.state


class ProgressReporter:
    """Single writer of a case's progress record.

    Percentages never go backwards, including across retries: the reporter
    is seeded with the last persisted percentage for the case.
    """

    def __init__(
        self,
        case_id: str,
        repository: CaseRepository,
        callback: Optional[ProgressCallback] = None,
        floor: int = 0,
    ):
        self.case_id = case_id
        self.repository = repository
        self.callback = callback
        self.machine = CaseStateMachine()
        self.percent = floor

    @classmethod
    async def resume(
        cls,
        case_id: str,
        repository: CaseRepository,
        callback: Optional[ProgressCallback] = None,
    ) -> "ProgressReporter":
        previous = await repository.get_progress(case_id)
        return cls(case_id, repository, callback, floor=previous.percent if previous else 0)

    @property
    def state(self) -> CaseState:
        return self.machine.state

    async def advance(self, state: CaseState, percent: int, label: str) -> ProgressUpdate:
        """Transition to a new state and publish progress."""
        self.machine.transition(state)
        return await self._publish(percent, label)

    async def report(self, percent: int, label: str) -> ProgressUpdate:
        """Publish progress within the current state."""
        return await self._publish(percent, label)

    async def _publish(self, percent: int, label: str) -> ProgressUpdate:
        self.percent = max(self.percent, min(100, percent))
        update = ProgressUpdate(percent=self.percent, stage_label=label, state=self.state)
        await self.repository.save_progress(self.case_id, update)

        logger.debug(
            "progress_reported",
            case_id=self.case_id,
            state=self.state.value,
            percent=self.percent,
            label=label,
        )

        if self.callback is not None:
            result: Any = self.callback(self.percent, label)
            if inspect.isawaitable(result):
                await result
        return update
