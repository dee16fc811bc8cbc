"""Triage: find hot zones and red flags across the whole timeline."""

import structlog

from subtext.config.prompts import (
    QUICK_TRIAGE_SYSTEM_PROMPT,
    QUICK_TRIAGE_USER_PROMPT,
    TRIAGE_SYSTEM_PROMPT,
    TRIAGE_USER_PROMPT,
)
from subtext.models import HotZone, StageName, Timeline, TriageFinding
from subtext.pipeline.stages.base import AnalysisStage, format_messages_for_llm

logger = structlog.get_logger(__name__)


def clamp_hot_zones(zones: list[HotZone], total_count: int) -> list[HotZone]:
    """Keep hot zone indices inside the timeline with start <= end."""
    if total_count <= 0:
        return []
    last = total_count - 1
    clamped = []
    for zone in zones:
        start = max(0, min(last, zone.start_index))
        end = max(0, min(last, zone.end_index))
        if start > end:
            start, end = end, start
        clamped.append(zone.model_copy(update={"start_index": start, "end_index": end}))
    return clamped


class TriageStage(AnalysisStage):
    name = StageName.TRIAGE

    async def run(self, timeline: Timeline) -> TriageFinding:
        conversation = format_messages_for_llm(timeline.messages, self.settings.llm_context_char_limit)
        data = await self._reason(
            TRIAGE_SYSTEM_PROMPT,
            TRIAGE_USER_PROMPT,
            total_count=timeline.total_count,
            conversation=conversation,
        )
        finding = self._coerce(TriageFinding, data, total_messages_scanned=timeline.total_count, quick=False)
        finding = finding.model_copy(update={
            "hot_zones": clamp_hot_zones(finding.hot_zones, timeline.total_count),
        })

        logger.info(
            "triage_complete",
            hot_zones=len(finding.hot_zones),
            red_flags=len(finding.red_flags),
        )
        return finding

    async def run_quick(self, text: str) -> TriageFinding:
        """Lightweight variant for a single message or screenshot."""
        data = await self._reason(QUICK_TRIAGE_SYSTEM_PROMPT, QUICK_TRIAGE_USER_PROMPT, text=text)
        finding = self._coerce(TriageFinding, data, hot_zones=[], total_messages_scanned=1, quick=True)

        logger.info("quick_triage_complete", red_flags=len(finding.red_flags), tone=finding.tone)
        return finding
