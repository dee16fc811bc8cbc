"""Unit tests for turning loose reasoning output into stage findings."""

import asyncio

import pytest

from conftest import FakeReasoningService
from subtext.pipeline.stages import HistorianStage, PatternMatcherStage, TriageStage

GOOD_ZONE = {"start_index": 5, "end_index": 9, "intensity_score": 80, "brief_summary": "Argument about plans"}


@pytest.fixture
def timeline(build_timeline):
    return build_timeline(20)


def _run_stage(stage_class, settings, response, timeline):
    reasoning = FakeReasoningService({stage_class.name.value: response})
    return asyncio.run(stage_class(reasoning, settings).run(timeline))


class TestTriageCoercion:

    def test_malformed_zone_is_dropped_alone(self, settings, timeline):
        response = {
            "hot_zones": [GOOD_ZONE, {"start_index": 12, "end_index": 14, "intensity_score": "high"}],
            "red_flags": [{"type": "gaslighting", "confidence": 90}],
        }
        finding = _run_stage(TriageStage, settings, response, timeline)

        assert [zone.start_index for zone in finding.hot_zones] == [5]
        assert [flag.type for flag in finding.red_flags] == ["gaslighting"]
        assert finding.total_messages_scanned == 20

    def test_non_object_items_are_dropped(self, settings, timeline):
        response = {"hot_zones": ["messages 3 to 7", GOOD_ZONE], "red_flags": "none"}
        finding = _run_stage(TriageStage, settings, response, timeline)

        assert len(finding.hot_zones) == 1
        assert finding.red_flags == []

    def test_malformed_scalar_falls_back_to_default(self, settings, timeline):
        response = {"hot_zones": [GOOD_ZONE], "summary": {"text": "tense"}, "tone": "hostile"}
        finding = _run_stage(TriageStage, settings, response, timeline)

        assert finding.summary is None
        assert finding.tone == "hostile"
        assert len(finding.hot_zones) == 1

    def test_local_values_override_reasoning_output(self, settings, timeline):
        response = {"total_messages_scanned": "lots", "quick": True}
        finding = _run_stage(TriageStage, settings, response, timeline)

        assert finding.total_messages_scanned == 20
        assert finding.quick is False


class TestSpecialistCoercion:

    def test_pattern_list_keeps_valid_items(self, settings, timeline):
        response = {
            "patterns": [
                {"name": "pursue_withdraw", "detected": True, "confidence": 75},
                {"name": "silent_treatment", "detected": "maybe?"},
            ],
            "interaction_loops": [{"type": "escalation", "frequency": 3}],
        }
        finding = _run_stage(PatternMatcherStage, settings, response, timeline)

        assert [p.name for p in finding.patterns] == ["pursue_withdraw"]
        assert len(finding.interaction_loops) == 1
        assert set(finding.sender_stats) == {"Alex", "Sam"}

    def test_historian_drops_nested_items_only(self, settings, timeline):
        response = {
            "recurring_themes": [
                {"theme": "chores", "frequency": 4},
                {"theme": "money", "frequency": "often"},
            ],
            "trajectory": {
                "overall": "improving",
                "phases": [{"period": 2024}, {"period": "March", "sentiment": "warm"}],
            },
        }
        finding = _run_stage(HistorianStage, settings, response, timeline)

        assert [t.theme for t in finding.recurring_themes] == ["chores"]
        assert finding.trajectory.overall == "improving"
        assert [p.period for p in finding.trajectory.phases] == ["March"]
