"""Pattern matcher: interaction loops and attachment styles."""

import structlog

from subtext.config.prompts import PATTERN_SYSTEM_PROMPT, PATTERN_USER_PROMPT
from subtext.models import PatternFinding, StageName, Timeline
from subtext.pipeline.stages.base import AnalysisStage, dump_for_prompt, format_messages_for_llm
from subtext.processing.metrics import pronoun_usage, reply_latency, sender_stats

logger = structlog.get_logger(__name__)


class PatternMatcherStage(AnalysisStage):
    name = StageName.PATTERN_MATCHER

    async def run(self, timeline: Timeline) -> PatternFinding:
        metrics = {
            "sender_stats": sender_stats(timeline),
            "latency_analysis": reply_latency(timeline),
            "pronoun_analysis": pronoun_usage(timeline),
        }

        data = await self._reason(
            PATTERN_SYSTEM_PROMPT,
            PATTERN_USER_PROMPT,
            sender_stats=dump_for_prompt({k: v.model_dump() for k, v in metrics["sender_stats"].items()}),
            latency=dump_for_prompt({k: v.model_dump() for k, v in metrics["latency_analysis"].items()}),
            pronouns=dump_for_prompt({k: v.model_dump() for k, v in metrics["pronoun_analysis"].items()}),
            conversation=format_messages_for_llm(timeline.messages, self.settings.llm_context_char_limit),
        )
        finding = self._coerce(PatternFinding, data, **metrics)

        logger.info(
            "pattern_matcher_complete",
            patterns_detected=sum(1 for p in finding.patterns if p.detected),
            loops=len(finding.interaction_loops),
        )
        return finding
