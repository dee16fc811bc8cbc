"""Historian: events, themes and trajectory over the full timeline."""

import structlog

from subtext.config.prompts import HISTORIAN_SYSTEM_PROMPT, HISTORIAN_USER_PROMPT
from subtext.models import HistorianFinding, StageName, Timeline
from subtext.pipeline.stages.base import AnalysisStage, format_messages_for_llm

logger = structlog.get_logger(__name__)


def _iso_or_unknown(value) -> str:
    return value.isoformat() if value is not None else "unknown"


class HistorianStage(AnalysisStage):
    name = StageName.HISTORIAN

    async def run(self, timeline: Timeline) -> HistorianFinding:
        data = await self._reason(
            HISTORIAN_SYSTEM_PROMPT,
            HISTORIAN_USER_PROMPT,
            date_start=_iso_or_unknown(timeline.date_range.start),
            date_end=_iso_or_unknown(timeline.date_range.end),
            total_count=timeline.total_count,
            duration_days=timeline.stats.total_duration_days,
            gap_count=len(timeline.gaps),
            gap_hours=self.settings.gap_threshold_hours,
            conversation=format_messages_for_llm(timeline.messages, self.settings.llm_context_char_limit),
        )
        finding = self._coerce(HistorianFinding, data)

        logger.info(
            "historian_complete",
            events=len(finding.event_timeline),
            themes=len(finding.recurring_themes),
            trajectory=finding.trajectory.overall,
        )
        return finding
