"""Clinician: Four Horsemen and repair coding inside each hot zone."""

from typing import Optional

import structlog

from subtext.config import Settings
from subtext.config.prompts import CLINICIAN_SYSTEM_PROMPT, CLINICIAN_USER_PROMPT
from subtext.llm import ReasoningService
from subtext.models import (
    BehaviorExample,
    BehaviorTally,
    ClinicianFinding,
    HotZone,
    RepairExample,
    RepairSummary,
    StageName,
    Timeline,
)
from subtext.pipeline.stages.base import AnalysisStage, format_messages_for_llm
from subtext.report.scoring import DEFAULT_WEIGHTS, HealthWeights, behavior_percentile, health_score

logger = structlog.get_logger(__name__)

BEHAVIORS = ("criticism", "contempt", "defensiveness", "stonewalling")
SUCCESSFUL_REPAIR_OUTCOMES = {"accepted", "successful"}


class ClinicianStage(AnalysisStage):
    name = StageName.CLINICIAN

    def __init__(
        self,
        reasoning: ReasoningService,
        settings: Optional[Settings] = None,
        weights: HealthWeights = DEFAULT_WEIGHTS,
    ):
        super().__init__(reasoning, settings)
        self.weights = weights

    async def run(self, timeline: Timeline, hot_zones: list[HotZone]) -> ClinicianFinding:
        """Code every hot zone, then compute frequencies over examined messages.

        Args:
            timeline: The stitched timeline.
            hot_zones: Zones from triage, already clamped to valid indices.

        Returns:
            Aggregated clinician finding with health score.
        """
        examples: dict[str, list[BehaviorExample]] = {behavior: [] for behavior in BEHAVIORS}
        repairs: list[RepairExample] = []
        examined: set[int] = set()

        for zone in hot_zones:
            zone_messages = timeline.messages_in_range(zone.start_index, zone.end_index)
            if not zone_messages:
                continue
            examined.update(m.index for m in zone_messages)

            data = await self._reason(
                CLINICIAN_SYSTEM_PROMPT,
                CLINICIAN_USER_PROMPT,
                start_index=zone.start_index,
                end_index=zone.end_index,
                zone_summary=zone.brief_summary or "none",
                conversation=format_messages_for_llm(zone_messages, self.settings.llm_context_char_limit),
            )
            for behavior in BEHAVIORS:
                examples[behavior].extend(self._valid_items(BehaviorExample, data.get(behavior)))
            repairs.extend(self._valid_items(RepairExample, data.get("repair_attempts")))

            logger.debug("clinician_zone_coded", start=zone.start_index, end=zone.end_index)

        finding = self._aggregate(examples, repairs, len(examined))

        logger.info(
            "clinician_complete",
            zones=len(hot_zones),
            messages_examined=finding.messages_examined,
            health_score=finding.overall_health_score,
        )
        return finding

    def _aggregate(
        self,
        examples: dict[str, list[BehaviorExample]],
        repairs: list[RepairExample],
        messages_examined: int,
    ) -> ClinicianFinding:
        tallies = {}
        for behavior, items in examples.items():
            frequency = round(len(items) / messages_examined * 1000) if messages_examined else 0
            tallies[behavior] = BehaviorTally(
                count=len(items),
                examples=items,
                frequency_per_1000=frequency,
                percentile=behavior_percentile(frequency),
            )

        successful = [r for r in repairs if r.outcome.lower() in SUCCESSFUL_REPAIR_OUTCOMES]
        repair_summary = RepairSummary(
            count=len(repairs),
            success_rate=round(len(successful) / len(repairs) * 100) if repairs else 0,
            examples=repairs,
        )

        finding = ClinicianFinding(
            **tallies,
            repair_attempts=repair_summary,
            messages_examined=messages_examined,
        )
        return finding.model_copy(update={"overall_health_score": health_score(finding, self.weights)})
