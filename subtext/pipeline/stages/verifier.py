"""Verifier: cross-check specialist claims against the raw timeline.

The reasoning service proposes claims with the messages it thinks support
them. Acceptance is decided here, deterministically:

- a claim below the veto threshold is vetoed
- a claim whose evidence resolves to fewer than the minimum number of
  distinct timeline messages is capped at a low confidence and vetoed

Evidence counts only if it exists: cited indices must be on the timeline
and quotes must fuzzily match a message.
"""

from typing import Optional

import structlog
from rapidfuzz import fuzz, process, utils

from subtext.config.prompts import VERIFIER_SYSTEM_PROMPT, VERIFIER_USER_PROMPT
from subtext.models import (
    ClinicianFinding,
    HistorianFinding,
    PatternFinding,
    StageName,
    Timeline,
    VerifiedClaim,
    VerifierFinding,
)
from subtext.pipeline.stages.base import AnalysisStage, dump_for_prompt, format_messages_for_llm

logger = structlog.get_logger(__name__)


def evidence_band(instances: int) -> str:
    if instances < 3:
        return "low"
    if instances >= 10:
        return "high"
    return "medium"


class VerifierStage(AnalysisStage):
    name = StageName.VERIFIER

    async def run(
        self,
        timeline: Timeline,
        clinician: ClinicianFinding,
        patterns: PatternFinding,
        historian: HistorianFinding,
    ) -> VerifierFinding:
        findings = {
            "clinician": clinician.model_dump(mode="json", exclude={"stage"}),
            "pattern_matcher": patterns.model_dump(mode="json", exclude={"stage"}),
            "historian": historian.model_dump(mode="json", exclude={"stage"}),
        }
        data = await self._reason(
            VERIFIER_SYSTEM_PROMPT,
            VERIFIER_USER_PROMPT,
            findings=dump_for_prompt(findings),
            conversation=format_messages_for_llm(timeline.messages, self.settings.verifier_context_char_limit),
        )

        proposed = []
        for key in ("claims", "verified_findings", "vetoed_findings"):
            proposed.extend(self._valid_items(VerifiedClaim, data.get(key)))

        finding = self.judge(proposed, timeline, data.get("methodology_notes"))

        logger.info(
            "verifier_complete",
            proposed=len(proposed),
            accepted=len(finding.verified_findings),
            vetoed=len(finding.vetoed_findings),
            overall_confidence=finding.overall_confidence,
        )
        return finding

    def judge(
        self,
        claims: list[VerifiedClaim],
        timeline: Timeline,
        methodology_notes: Optional[list] = None,
    ) -> VerifierFinding:
        """Apply the acceptance rules to proposed claims."""
        accepted: list[VerifiedClaim] = []
        vetoed: list[VerifiedClaim] = []
        for claim in claims:
            checked = self._check_claim(claim, timeline)
            (vetoed if checked.veto else accepted).append(checked)

        overall = round(sum(c.confidence for c in accepted) / len(accepted)) if accepted else 0
        notes = [str(note) for note in methodology_notes] if isinstance(methodology_notes, list) else []

        return VerifierFinding(
            verified_findings=accepted,
            vetoed_findings=vetoed,
            overall_confidence=overall,
            methodology_notes=notes,
        )

    def corroborating_messages(self, claim: VerifiedClaim, timeline: Timeline) -> set[int]:
        """Distinct timeline messages that back up a claim."""
        supported = {index for index in claim.message_indices if 0 <= index < timeline.total_count}

        contents = [message.content for message in timeline.messages]
        for quote in claim.quotes:
            if not quote or not quote.strip():
                continue
            match = process.extractOne(
                quote,
                contents,
                scorer=fuzz.partial_ratio,
                processor=utils.default_process,
                score_cutoff=self.settings.quote_match_threshold,
            )
            if match is not None:
                supported.add(timeline.messages[match[2]].index)

        return supported

    def _check_claim(self, claim: VerifiedClaim, timeline: Timeline) -> VerifiedClaim:
        instances = len(self.corroborating_messages(claim, timeline))
        confidence = claim.confidence
        reasons = []

        if confidence < self.settings.veto_threshold:
            reasons.append(f"Confidence {confidence:g} is below {self.settings.veto_threshold}")
        if instances < self.settings.min_corroborating_instances:
            confidence = min(confidence, self.settings.low_evidence_confidence_cap)
            reasons.append(
                f"Insufficient evidence: {instances} corroborating instance(s), "
                f"{self.settings.min_corroborating_instances} required"
            )

        return claim.model_copy(update={
            "agent": claim.agent.lower(),
            "confidence": confidence,
            "corroborating_instances": instances,
            "evidence_band": evidence_band(instances),
            "veto": bool(reasons),
            "veto_reason": "; ".join(reasons) if reasons else None,
        })
