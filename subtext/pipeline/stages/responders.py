"""Request/response stages: answer a question, suggest a reply."""

import json
from typing import Optional

import structlog

from subtext.config.prompts import (
    ANSWER_SYSTEM_PROMPT,
    ANSWER_USER_PROMPT,
    REPLY_SYSTEM_PROMPT,
    REPLY_USER_PROMPT,
)
from subtext.models import AnswerFinding, ReplySuggestionFinding, Report, StageName, Timeline
from subtext.pipeline.stages.base import AnalysisStage, format_messages_for_llm

logger = structlog.get_logger(__name__)

SUMMARY_CHAR_LIMIT = 5000
NO_ANALYSIS = "No prior analysis available."


def summarize_report(report: Optional[Report], limit: int = SUMMARY_CHAR_LIMIT) -> str:
    """Compact JSON view of a report for use as prompt context."""
    if report is None:
        return NO_ANALYSIS
    text = json.dumps(report.model_dump(mode="json", exclude={"case_id"}), default=str)
    return text[:limit]


class AnswerStage(AnalysisStage):
    name = StageName.ANSWER

    async def run(self, question: str, timeline: Timeline, report: Optional[Report]) -> AnswerFinding:
        data = await self._reason(
            ANSWER_SYSTEM_PROMPT,
            ANSWER_USER_PROMPT,
            question=question,
            analysis_summary=summarize_report(report),
            conversation=format_messages_for_llm(timeline.messages, self.settings.llm_context_char_limit),
        )
        finding = self._coerce(AnswerFinding, data, question=question)
        valid = [i for i in finding.cited_indices if 0 <= i < timeline.total_count]
        finding = finding.model_copy(update={"cited_indices": valid})

        logger.info("answer_complete", cited=len(finding.cited_indices), answered=bool(finding.answer))
        return finding


class ReplySuggestionStage(AnalysisStage):
    name = StageName.REPLY_SUGGESTION

    async def run(self, screenshot_text: str, report: Optional[Report]) -> ReplySuggestionFinding:
        data = await self._reason(
            REPLY_SYSTEM_PROMPT,
            REPLY_USER_PROMPT,
            screenshot_text=screenshot_text,
            analysis_summary=summarize_report(report),
        )
        finding = self._coerce(ReplySuggestionFinding, data, screenshot_text=screenshot_text)

        logger.info("reply_suggestion_complete", alternatives=len(finding.alternatives))
        return finding
