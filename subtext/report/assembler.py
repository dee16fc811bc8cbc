"""Report assembly: Timeline + findings -> display-ready Report.

Assembly is a pure function of its inputs. There is no generation timestamp
and every mapping is built in a fixed order, so assembling the same inputs
twice yields byte-identical JSON.
"""

from typing import Any

import structlog

from subtext.models import (
    ClinicianFinding,
    FindingSet,
    HistorianFinding,
    PatternFinding,
    RedFlag,
    Report,
    ReportChapter,
    ReportMetadata,
    ReportSection,
    ReportType,
    SectionKind,
    Timeline,
    TriageFinding,
    VerifierFinding,
)
from subtext.report.scoring import baseline_health_score, flag_severity, risk_level

logger = structlog.get_logger(__name__)

HORSEMEN = ("criticism", "contempt", "defensiveness", "stonewalling")

# Healthy per-1000 frequency drawn as a reference line on the scorecard
HEALTHY_BASELINE_PER_1000 = 10

SAFETY_RESOURCES = [
    "If you feel unsafe, contact the National DV Hotline: 1-800-799-7233",
    "Crisis Text Line: Text HOME to 741741",
    "Consider speaking with a licensed therapist for professional guidance",
]

PROFESSIONAL_HELP_TEXT = (
    "If this report identifies patterns consistent with emotional abuse, manipulation, "
    "or if you feel unsafe, please seek professional help. This analysis is not a "
    "substitute for therapy or counseling."
)

DISCLAIMER_TEXT = (
    "This analysis identifies patterns consistent with established relationship research "
    "frameworks. It is not a clinical diagnosis. The findings reflect communication patterns "
    "observed in the data provided and should be discussed with a qualified professional "
    "for personalized guidance."
)


def _section(heading: str, kind: SectionKind, content: Any) -> ReportSection:
    return ReportSection(heading=heading, kind=kind, content=content)


def _dump(items: list) -> list:
    return [item.model_dump(mode="json") for item in items]


def format_flag_type(flag_type: str) -> str:
    """gaslighting_phrases -> Gaslighting Phrases"""
    return " ".join(word.capitalize() for word in flag_type.replace("_", " ").split())


def assemble(case_id: str, timeline: Timeline, findings: FindingSet) -> Report:
    """Build the report for a case.

    The deep report is built when every specialist and the verifier
    contributed a finding; otherwise the baseline report is built from the
    triage finding.
    """
    if findings.is_deep:
        report = _assemble_deep(case_id, timeline, findings)
    else:
        report = _assemble_baseline(case_id, timeline, findings.triage or TriageFinding())

    logger.info(
        "report_assembled",
        case_id=case_id,
        report_type=report.report_type.value,
        chapters=len(report.chapters),
    )
    return report


def _metadata(timeline: Timeline, confidence: float, health: float) -> ReportMetadata:
    return ReportMetadata(
        total_messages=timeline.total_count,
        date_range=timeline.date_range,
        senders=list(timeline.senders),
        overall_confidence=int(max(0, min(100, round(confidence)))),
        overall_health_score=int(max(0, min(100, round(health)))),
    )


# =============================================================================
# Baseline Report
# =============================================================================

def _assemble_baseline(case_id: str, timeline: Timeline, triage: TriageFinding) -> Report:
    chapters = [
        ReportChapter(title="Quick Assessment", sections=[
            _section("Tone Analysis", SectionKind.SCORE, {
                "label": "Communication Tone",
                "value": triage.tone or "neutral",
                "score": triage.tone_score if triage.tone_score is not None else 50,
                "scale": {"min": 0, "max": 100, "labels": ["Hostile", "Cold", "Neutral", "Warm", "Loving"]},
            }),
            _section("Hidden Aggression Score", SectionKind.SCORE, {
                "label": "Hidden Aggression",
                "score": triage.hidden_aggression_score or 0,
                "scale": {"min": 0, "max": 100, "labels": ["None", "Low", "Moderate", "High", "Severe"]},
                "description": (
                    "Measures passive-aggressive patterns, gaslighting indicators, "
                    "and covert manipulation"
                ),
            }),
            _section(
                "Summary",
                SectionKind.TEXT,
                triage.summary or "Analysis complete. See red flags below for details.",
            ),
        ]),
        ReportChapter(title="Red Flags Detected", sections=[
            _section(format_flag_type(flag.type), SectionKind.LIST, {
                "type": flag.type,
                "description": flag.description,
                "confidence": flag.confidence,
                "severity": flag_severity(flag.confidence),
                "message_indices": flag.message_indices,
            })
            for flag in triage.red_flags
        ]),
    ]

    if triage.hot_zones:
        chapters.append(_critical_episodes(triage))

    if triage.quick:
        advice = (
            "This is a single-message analysis. For a comprehensive understanding, upload your "
            "full conversation history. Patterns are best identified across many interactions over time."
        )
    else:
        advice = (
            "This scan highlights where tension concentrates. Run a deep analysis to see how "
            "these episodes connect into recurring patterns."
        )
    chapters.append(ReportChapter(title="What to Watch For", sections=[
        _section("Recommendations", SectionKind.TEXT, advice),
        _section("Resources", SectionKind.LIST, list(SAFETY_RESOURCES)),
    ]))

    confidences = [flag.confidence for flag in triage.red_flags]
    confidence = sum(confidences) / len(confidences) if confidences else 0

    return Report(
        case_id=case_id,
        report_type=ReportType.BASELINE,
        chapters=chapters,
        metadata=_metadata(timeline, confidence, baseline_health_score(triage)),
    )


def _episode_heading(number: int, summary: str) -> str:
    return f"Episode {number}: {summary}" if summary else f"Episode {number}"


def _critical_episodes(triage: TriageFinding) -> ReportChapter:
    return ReportChapter(title="Critical Episodes", sections=[
        _section(_episode_heading(number, zone.brief_summary), SectionKind.LIST, {
            "intensity": zone.intensity_score,
            "message_range": f"Messages {zone.start_index}-{zone.end_index}",
            "start_index": zone.start_index,
            "end_index": zone.end_index,
            "indicators": zone.indicators,
        })
        for number, zone in enumerate(triage.hot_zones, start=1)
    ])


# =============================================================================
# Deep Report
# =============================================================================

def _assemble_deep(case_id: str, timeline: Timeline, findings: FindingSet) -> Report:
    triage = findings.triage or TriageFinding()
    clinician = findings.clinician
    patterns = findings.pattern_matcher
    historian = findings.historian
    verifier = findings.verifier

    chapters = [
        _executive_summary(clinician, patterns, historian, verifier),
        _timeline_chapter(timeline, historian),
        _scorecard_chapter(clinician),
        _attachment_chapter(patterns),
        _communication_chapter(timeline, patterns),
        _critical_episodes(triage),
        _red_flags_chapter(triage.red_flags, verifier),
        _longitudinal_chapter(historian),
        _action_guide(clinician, patterns, historian),
    ]

    return Report(
        case_id=case_id,
        report_type=ReportType.DEEP,
        chapters=chapters,
        metadata=_metadata(timeline, verifier.overall_confidence, clinician.overall_health_score),
    )


def _executive_summary(
    clinician: ClinicianFinding,
    patterns: PatternFinding,
    historian: HistorianFinding,
    verifier: VerifierFinding,
) -> ReportChapter:
    top_patterns = [p for p in patterns.patterns if p.detected and p.confidence >= 70][:3]
    return ReportChapter(title="Executive Summary", sections=[
        _section("Overall Health Score", SectionKind.SCORE, {
            "score": clinician.overall_health_score,
            "scale": {"min": 0, "max": 100},
            "risk_level": risk_level(clinician.overall_health_score),
        }),
        _section("Top Patterns Detected", SectionKind.LIST, [
            {"name": p.name, "confidence": p.confidence, "evidence": p.evidence}
            for p in top_patterns
        ]),
        _section("Relationship Trajectory", SectionKind.TEXT, historian.trajectory.description),
        _section("Verification Confidence", SectionKind.SCORE, {
            "score": verifier.overall_confidence,
            "description": (
                f"Based on {len(verifier.verified_findings)} verified findings "
                f"and {len(verifier.vetoed_findings)} vetoed claims"
            ),
        }),
    ])


def _timeline_chapter(timeline: Timeline, historian: HistorianFinding) -> ReportChapter:
    daily: dict[str, int] = {}
    for message in timeline.messages:
        if message.resolved_time is not None:
            day = message.resolved_time.date().isoformat()
            daily[day] = daily.get(day, 0) + 1

    return ReportChapter(title="The Timeline", sections=[
        _section("Message Volume Over Time", SectionKind.CHART_DATA, {
            "chart_type": "line",
            "description": "Messages per day over the relationship duration",
            "data": daily,
        }),
        _section("Communication Gaps", SectionKind.TABLE, [
            {
                "after_index": gap.after_index,
                "start": gap.start.isoformat(),
                "end": gap.end.isoformat(),
                "duration": f"{round(gap.duration_hours)} hours",
            }
            for gap in timeline.gaps
        ]),
        _section("Key Events", SectionKind.TIMELINE_EVENT, _dump(historian.event_timeline)),
    ])


def _scorecard_chapter(clinician: ClinicianFinding) -> ReportChapter:
    sections = [
        _section("Frequency Analysis", SectionKind.CHART_DATA, {
            "chart_type": "bar",
            "data": {b: getattr(clinician, b).frequency_per_1000 for b in HORSEMEN},
            "baseline": HEALTHY_BASELINE_PER_1000,
            "messages_examined": clinician.messages_examined,
        }),
    ]
    for behavior in HORSEMEN:
        tally = getattr(clinician, behavior)
        sections.append(_section(behavior.capitalize(), SectionKind.LIST, {
            "count": tally.count,
            "frequency": tally.frequency_per_1000,
            "percentile": tally.percentile,
            "examples": _dump(tally.examples[:3]),
        }))
    sections.append(_section("Repair Attempts", SectionKind.LIST, {
        "count": clinician.repair_attempts.count,
        "success_rate": clinician.repair_attempts.success_rate,
        "examples": _dump(clinician.repair_attempts.examples[:5]),
    }))
    return ReportChapter(title="Four Horsemen Scorecard", sections=sections)


def _attachment_chapter(patterns: PatternFinding) -> ReportChapter:
    return ReportChapter(title="Attachment Map", sections=[
        _section("Attachment Style Assessment", SectionKind.TABLE, {
            person: assessment.model_dump(mode="json")
            for person, assessment in patterns.attachment_style.items()
        }),
        _section("Pronoun Usage Analysis", SectionKind.TABLE, {
            sender: usage.model_dump(mode="json") for sender, usage in patterns.pronoun_analysis.items()
        }),
        _section("Response Latency Patterns", SectionKind.TABLE, {
            sender: profile.model_dump(mode="json") for sender, profile in patterns.latency_analysis.items()
        }),
        _section("Interaction Loops", SectionKind.LIST, _dump(patterns.interaction_loops)),
    ])


def _communication_chapter(timeline: Timeline, patterns: PatternFinding) -> ReportChapter:
    return ReportChapter(title="Communication Audit", sections=[
        _section("Message Balance", SectionKind.CHART_DATA, {
            "chart_type": "pie",
            "data": dict(timeline.stats.messages_per_sender),
        }),
        _section("Average Message Length", SectionKind.TABLE, dict(timeline.stats.avg_message_length)),
        _section("Detected Patterns", SectionKind.LIST, _dump([p for p in patterns.patterns if p.detected])),
    ])


def _flag_verified(flag: RedFlag, verifier: VerifierFinding) -> bool:
    needles = {flag.type.lower(), flag.type.lower().replace("_", " ")}
    return any(
        needle in claim.claim.lower()
        for claim in verifier.verified_findings
        for needle in needles
        if needle
    )


def _red_flags_chapter(red_flags: list[RedFlag], verifier: VerifierFinding) -> ReportChapter:
    return ReportChapter(title="Red Flags Report", sections=[
        _section("Detected Patterns", SectionKind.LIST, [
            {
                **flag.model_dump(mode="json"),
                "severity": flag_severity(flag.confidence),
                "verified": _flag_verified(flag, verifier),
            }
            for flag in red_flags
        ]),
        _section("Verified Findings", SectionKind.LIST, _dump(verifier.verified_findings)),
        _section(
            "Verification Summary",
            SectionKind.TEXT,
            f"{len(verifier.verified_findings)} findings verified, "
            f"{len(verifier.vetoed_findings)} findings could not be confirmed.",
        ),
    ])


def _longitudinal_chapter(historian: HistorianFinding) -> ReportChapter:
    trajectory = historian.trajectory
    return ReportChapter(title="Longitudinal Analysis", sections=[
        _section("Relationship Trajectory", SectionKind.TEXT, {
            "trajectory": trajectory.overall,
            "confidence": trajectory.confidence,
            "description": trajectory.description,
            "phases": _dump(trajectory.phases),
        }),
        _section("Recurring Themes", SectionKind.LIST, _dump(historian.recurring_themes)),
        _section("Turning Points", SectionKind.LIST, _dump(historian.turning_points)),
        _section("Reference Web", SectionKind.LIST, _dump(historian.reference_web)),
    ])


def key_takeaways(clinician: ClinicianFinding, patterns: PatternFinding, historian: HistorianFinding) -> list[str]:
    takeaways = []
    if clinician.overall_health_score < 40:
        takeaways.append(
            "The communication patterns show significant signs of distress. "
            "Professional support is strongly recommended."
        )
    if clinician.contempt.count > 0:
        takeaways.append(
            "Contempt was detected in the communication. Research shows contempt is the "
            "strongest predictor of relationship dissolution."
        )
    if clinician.repair_attempts.count > 0 and clinician.repair_attempts.success_rate < 30:
        takeaways.append(
            "Repair attempts are largely unsuccessful, which indicates difficulty recovering from conflict."
        )

    dominant = [p for p in patterns.patterns if p.detected and p.confidence >= 75]
    for pattern in dominant[:3]:
        takeaways.append(f"Pattern detected: {pattern.name} ({pattern.confidence:g}% confidence) - {pattern.evidence}")

    if historian.trajectory.overall == "declining":
        takeaways.append("The relationship trajectory appears to be declining over time.")

    if not takeaways:
        takeaways.append(
            "No critical patterns were detected with high confidence. Continue monitoring communication health."
        )
    return takeaways


def communication_strategies(clinician: ClinicianFinding, patterns: PatternFinding) -> list[str]:
    strategies = []
    if clinician.criticism.count > 0:
        strategies.append(
            'Replace criticism with "I" statements: instead of "You always...", try "I feel... when..."'
        )
    if clinician.defensiveness.count > 0:
        strategies.append("Practice taking responsibility: acknowledge your part, even if it is small")
    if clinician.stonewalling.count > 0:
        strategies.append(
            "Request timeouts instead of shutting down: \"I need 20 minutes to calm down, then let's talk\""
        )
    if any(p.name == "demand_withdraw" and p.detected for p in patterns.patterns):
        strategies.append(
            "Break the pursue-withdraw cycle: the pursuer gives space and the withdrawer "
            "commits to re-engage at a specific time"
        )
    strategies.append("Consider couples or individual therapy to work on these patterns with professional guidance")
    return strategies


def _action_guide(
    clinician: ClinicianFinding,
    patterns: PatternFinding,
    historian: HistorianFinding,
) -> ReportChapter:
    return ReportChapter(title="Action Guide", sections=[
        _section("Key Takeaways", SectionKind.LIST, key_takeaways(clinician, patterns, historian)),
        _section("Communication Strategies", SectionKind.LIST, communication_strategies(clinician, patterns)),
        _section("When to Seek Professional Help", SectionKind.TEXT, PROFESSIONAL_HELP_TEXT),
        _section("Resources", SectionKind.LIST, list(SAFETY_RESOURCES)),
        _section("Disclaimer", SectionKind.TEXT, DISCLAIMER_TEXT),
    ])
