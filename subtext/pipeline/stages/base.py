"""Shared plumbing for analysis stages.

A stage takes declared inputs (the Timeline plus earlier findings), asks the
reasoning service for an opinion, and returns one immutable finding. Stages
hold no per-run state, so they can run concurrently and be retried freely.
"""

import copy
import json
from typing import Any, ClassVar, Iterable, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from subtext.config import Settings, get_settings
from subtext.llm import ReasoningService, StagePrompt
from subtext.models import StageName, TimelineMessage
from subtext.processing.timeline import UNKNOWN_SENDER

logger = structlog.get_logger(__name__)

FindingT = TypeVar("FindingT", bound=BaseModel)


def format_messages_for_llm(messages: Iterable[TimelineMessage], limit: int) -> str:
    """Render messages as ``[index] YYYY-MM-DD HH:MM:SS - sender: text`` lines.

    Stops before the line that would push the text past ``limit`` characters.
    """
    lines = []
    total_chars = 0
    for message in messages:
        timestamp = (
            message.resolved_time.strftime("%Y-%m-%d %H:%M:%S")
            if message.resolved_time is not None
            else "Unknown time"
        )
        line = f"[{message.index}] {timestamp} - {message.sender or UNKNOWN_SENDER}: {message.content}"
        total_chars += len(line)
        if total_chars > limit:
            break
        lines.append(line)
    return "\n".join(lines)


def dump_for_prompt(value: Any) -> str:
    """JSON text for embedding data in a prompt."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    return json.dumps(value, indent=2, default=str)


def _prune_invalid(payload: dict, errors: list[dict], protected: Iterable[str] = ()) -> bool:
    """Remove the values named by validation errors from ``payload`` in place.

    Each error drops the innermost list item on its path, or the top-level
    key when the path crosses no list. Returns False when nothing could be
    removed.
    """
    protected = set(protected)
    doomed_items: dict[int, tuple[list, set[int]]] = {}
    doomed_keys: set[str] = set()

    for error in errors:
        loc = error.get("loc", ())
        if not loc:
            continue
        target = None
        container: Any = payload
        for step in loc:
            if isinstance(container, list) and isinstance(step, int) and 0 <= step < len(container):
                target = (container, step)
                container = container[step]
            elif isinstance(container, dict) and step in container:
                container = container[step]
            else:
                break
        if target is not None:
            items, index = target
            doomed_items.setdefault(id(items), (items, set()))[1].add(index)
        elif loc[0] in payload and loc[0] not in protected:
            doomed_keys.add(loc[0])

    for items, indices in doomed_items.values():
        for index in sorted(indices, reverse=True):
            del items[index]
    for key in doomed_keys:
        del payload[key]
    return bool(doomed_items or doomed_keys)


class AnalysisStage:
    """Base class for stages that consult the reasoning service."""

    name: ClassVar[StageName]

    def __init__(self, reasoning: ReasoningService, settings: Optional[Settings] = None):
        self.reasoning = reasoning
        self.settings = settings or get_settings()

    async def _reason(self, system: str, user: str, **variables: Any) -> dict:
        prompt = StagePrompt(stage=self.name.value, system=system, user=user, variables=variables)
        data = await self.reasoning.invoke(prompt)
        if not isinstance(data, dict):
            logger.warning("reasoning_output_not_object", stage=self.name.value, type=type(data).__name__)
            return {}
        return data

    def _coerce(self, model: type[FindingT], data: dict, **computed: Any) -> FindingT:
        """Validate reasoning output into a finding, dropping what does not fit.

        ``computed`` values are produced locally and always override whatever
        the reasoning service returned for the same keys. A malformed list
        item is dropped on its own; any other malformed value is dropped back
        to its field default. The rest of the output is kept.
        """
        payload = copy.deepcopy({key: value for key, value in data.items() if key != "stage"})
        payload.update(computed)
        while True:
            try:
                return model.model_validate(payload)
            except ValidationError as e:
                logger.warning(
                    "finding_validation_failed",
                    stage=self.name.value,
                    errors=e.error_count(),
                    detail=str(e)[:300],
                )
                if not _prune_invalid(payload, e.errors(), protected=computed.keys()):
                    return model.model_validate(computed)

    @staticmethod
    def _valid_items(model: type[FindingT], items: Any) -> list[FindingT]:
        """Validate list items one by one, dropping the ones that do not fit."""
        if not isinstance(items, list):
            return []
        valid = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                valid.append(model.model_validate(item))
            except ValidationError:
                continue
        return valid
