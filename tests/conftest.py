"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import pytest

from subtext.config import Settings
from subtext.llm import StagePrompt
from subtext.models import RawMessage, Timeline
from subtext.processing import TimelineStitcher
from subtext.services import ArtifactCaseRecordStore, CaseRepository, MemoryArtifactStore

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

SENDERS = ("Alex", "Sam")


class FakeReasoningService:
    """Scripted stand-in for the model-backed reasoning service.

    ``responses`` maps a stage name to either a dict, a list of dicts
    (consumed one per call, the last one repeating), an exception instance to
    raise, or a callable taking the prompt. Unscripted stages return ``{}``.
    """

    def __init__(self, responses: Optional[dict[str, Any]] = None):
        self.responses = dict(responses or {})
        self.calls: list[StagePrompt] = []

    async def invoke(self, prompt: StagePrompt) -> dict:
        self.calls.append(prompt)
        response = self.responses.get(prompt.stage, {})
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(prompt)
        if isinstance(response, list):
            if len(response) > 1:
                return response.pop(0)
            return response[0] if response else {}
        return response

    def stages_called(self) -> list[str]:
        return [call.stage for call in self.calls]


def raw(
    content: str,
    sender: Optional[str] = "Alex",
    at: Optional[datetime] = None,
    source: str = "chat.txt",
) -> RawMessage:
    """RawMessage with an ISO timestamp (or none)."""
    return RawMessage(
        source=source,
        content=content,
        sender=sender,
        timestamp=at.isoformat() if at is not None else None,
    )


def conversation(count: int, step: timedelta = timedelta(minutes=10), start: datetime = BASE_TIME) -> list[RawMessage]:
    """Alternating two-person conversation with distinct messages."""
    return [
        raw(f"Message number {n} about the weekend plans", SENDERS[n % 2], start + step * n)
        for n in range(count)
    ]


@pytest.fixture
def settings() -> Settings:
    """Settings with no backoff so retries run instantly."""
    return Settings(
        _env_file=None,
        job_backoff_seconds=0,
        job_backoff_max_seconds=0,
        storage_dir="unused",
    )


@pytest.fixture
def stitcher(settings: Settings) -> TimelineStitcher:
    return TimelineStitcher(settings)


@pytest.fixture
def build_timeline(stitcher: TimelineStitcher) -> Callable[..., Timeline]:
    def _build(count: int = 60, **kwargs) -> Timeline:
        return stitcher.stitch(conversation(count, **kwargs))

    return _build


@pytest.fixture
def memory_store() -> MemoryArtifactStore:
    return MemoryArtifactStore()


@pytest.fixture
def repository(memory_store: MemoryArtifactStore, settings: Settings) -> CaseRepository:
    return CaseRepository(memory_store, settings)


@pytest.fixture
def case_store(memory_store: MemoryArtifactStore) -> ArtifactCaseRecordStore:
    return ArtifactCaseRecordStore(memory_store)


@pytest.fixture
def fake_reasoning() -> FakeReasoningService:
    return FakeReasoningService()
