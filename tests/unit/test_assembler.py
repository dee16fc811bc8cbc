"""Unit tests for report assembly."""

from datetime import timedelta

import pytest

from subtext.models import (
    BehaviorTally,
    ClinicianFinding,
    DetectedPattern,
    FindingSet,
    HistorianFinding,
    HotZone,
    PatternFinding,
    RedFlag,
    ReportType,
    SectionKind,
    TriageFinding,
    VerifiedClaim,
    VerifierFinding,
)
from subtext.report import assemble
from subtext.report.assembler import format_flag_type, key_takeaways

BASELINE_CHAPTERS = ["Quick Assessment", "Red Flags Detected", "Critical Episodes", "What to Watch For"]
DEEP_CHAPTERS = [
    "Executive Summary",
    "The Timeline",
    "Four Horsemen Scorecard",
    "Attachment Map",
    "Communication Audit",
    "Critical Episodes",
    "Red Flags Report",
    "Longitudinal Analysis",
    "Action Guide",
]


@pytest.fixture
def triage() -> TriageFinding:
    return TriageFinding(
        hot_zones=[HotZone(start_index=10, end_index=14, intensity_score=8, brief_summary="Argument about plans")],
        red_flags=[
            RedFlag(type="gaslighting_phrases", description="Denies earlier statements", confidence=85),
            RedFlag(type="silent_treatment", description="Long silences after conflict", confidence=65),
        ],
        total_messages_scanned=60,
        tone="tense",
        tone_score=35,
        hidden_aggression_score=40,
        summary="Frequent friction around plans.",
    )


@pytest.fixture
def deep_findings(triage) -> FindingSet:
    return FindingSet(
        triage=triage,
        clinician=ClinicianFinding(
            contempt=BehaviorTally(count=2, frequency_per_1000=40, percentile=95),
            messages_examined=50,
            overall_health_score=35,
        ),
        pattern_matcher=PatternFinding(patterns=[
            DetectedPattern(name="demand_withdraw", detected=True, confidence=80, evidence="Alex pursues, Sam withdraws"),
            DetectedPattern(name="love_bombing", detected=False, confidence=20),
        ]),
        historian=HistorianFinding(trajectory={"overall": "declining", "confidence": 70, "description": "Cooling off"}),
        verifier=VerifierFinding(
            verified_findings=[VerifiedClaim(claim="Repeated gaslighting phrases", agent="clinician", confidence=80)],
            vetoed_findings=[VerifiedClaim(claim="Weak claim", confidence=40, veto=True)],
            overall_confidence=80,
        ),
    )


def _chapter(report, title):
    return next(c for c in report.chapters if c.title == title)


class TestBaselineReport:

    def test_chapters(self, build_timeline, triage):
        report = assemble("case-1", build_timeline(60), FindingSet(triage=triage))

        assert report.report_type is ReportType.BASELINE
        assert [c.title for c in report.chapters] == BASELINE_CHAPTERS

    def test_red_flag_sections(self, build_timeline, triage):
        report = assemble("case-1", build_timeline(60), FindingSet(triage=triage))
        sections = _chapter(report, "Red Flags Detected").sections

        assert [s.heading for s in sections] == ["Gaslighting Phrases", "Silent Treatment"]
        assert [s.content["severity"] for s in sections] == ["high", "medium"]
        assert all(s.kind is SectionKind.LIST for s in sections)

    def test_metadata(self, build_timeline, triage):
        timeline = build_timeline(60)
        report = assemble("case-1", timeline, FindingSet(triage=triage))

        assert report.metadata.total_messages == 60
        assert report.metadata.senders == ["Alex", "Sam"]
        assert report.metadata.overall_confidence == 75
        assert report.metadata.overall_health_score == 60

    def test_quick_scan_defaults(self, build_timeline):
        report = assemble("case-1", build_timeline(1), FindingSet(triage=TriageFinding(quick=True)))

        assert [c.title for c in report.chapters] == ["Quick Assessment", "Red Flags Detected", "What to Watch For"]
        tone, _, summary = _chapter(report, "Quick Assessment").sections
        assert tone.content["value"] == "neutral"
        assert tone.content["score"] == 50
        assert summary.content == "Analysis complete. See red flags below for details."
        advice = _chapter(report, "What to Watch For").sections[0].content
        assert "full conversation history" in advice

    def test_missing_triage_still_assembles(self, build_timeline):
        report = assemble("case-1", build_timeline(3), FindingSet())
        assert report.metadata.overall_health_score == 100


class TestDeepReport:

    def test_chapters(self, build_timeline, deep_findings):
        report = assemble("case-2", build_timeline(60), deep_findings)

        assert report.report_type is ReportType.DEEP
        assert [c.title for c in report.chapters] == DEEP_CHAPTERS
        assert report.metadata.overall_confidence == 80
        assert report.metadata.overall_health_score == 35

    def test_executive_summary(self, build_timeline, deep_findings):
        report = assemble("case-2", build_timeline(60), deep_findings)
        health, top, trajectory, confidence = _chapter(report, "Executive Summary").sections

        assert health.content["risk_level"] == "High Risk"
        assert [p["name"] for p in top.content] == ["demand_withdraw"]
        assert trajectory.content == "Cooling off"
        assert "1 verified findings and 1 vetoed claims" in confidence.content["description"]

    def test_red_flags_marked_verified(self, build_timeline, deep_findings):
        report = assemble("case-2", build_timeline(60), deep_findings)
        flags = _chapter(report, "Red Flags Report").sections[0].content

        assert [f["verified"] for f in flags] == [True, False]

    def test_gap_table(self, build_timeline, deep_findings):
        timeline = build_timeline(60, step=timedelta(hours=30))
        report = assemble("case-2", timeline, deep_findings)
        gaps = _chapter(report, "The Timeline").sections[1]

        assert gaps.kind is SectionKind.TABLE
        assert gaps.content == []

        timeline = build_timeline(60, step=timedelta(hours=50))
        gaps = _chapter(assemble("case-2", timeline, deep_findings), "The Timeline").sections[1]
        assert len(gaps.content) == 59
        assert gaps.content[0]["duration"] == "50 hours"

    def test_action_guide(self, build_timeline, deep_findings):
        report = assemble("case-2", build_timeline(60), deep_findings)
        takeaways, strategies, *_ = _chapter(report, "Action Guide").sections

        assert any("Contempt was detected" in t for t in takeaways.content)
        assert any("declining" in t for t in takeaways.content)
        assert any("pursue-withdraw" in s for s in strategies.content)


class TestDeterminism:

    def test_same_inputs_give_identical_json(self, build_timeline, deep_findings, triage):
        timeline = build_timeline(60)

        assert (
            assemble("case-2", timeline, deep_findings).model_dump_json()
            == assemble("case-2", timeline, deep_findings).model_dump_json()
        )
        baseline = FindingSet(triage=triage)
        assert (
            assemble("case-1", timeline, baseline).model_dump_json()
            == assemble("case-1", timeline, baseline).model_dump_json()
        )


class TestHelpers:

    def test_format_flag_type(self):
        assert format_flag_type("hidden_aggression") == "Hidden Aggression"

    def test_quiet_conversation_takeaway(self):
        takeaways = key_takeaways(
            ClinicianFinding(overall_health_score=90), PatternFinding(), HistorianFinding()
        )
        assert takeaways == [
            "No critical patterns were detected with high confidence. "
            "Continue monitoring communication health."
        ]
