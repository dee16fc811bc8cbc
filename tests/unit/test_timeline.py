"""Unit tests for timeline stitching."""

from datetime import timedelta

import pytest

from conftest import BASE_TIME, raw
from subtext.errors import InputError
from subtext.processing.timeline import UNKNOWN_SENDER


class TestOrdering:
    """Tests for chronological ordering and index assignment."""

    def test_untimed_messages_go_last_in_encounter_order(self, stitcher):
        messages = [
            raw("A", "Alex", BASE_TIME + timedelta(hours=1)),
            raw("B", "Sam", None),
            raw("C", "Alex", BASE_TIME),
        ]
        timeline = stitcher.stitch(messages)

        assert [m.content for m in timeline.messages] == ["C", "A", "B"]
        assert timeline.messages[2].resolved_time is None

    def test_indices_are_dense(self, stitcher):
        messages = [raw(f"m{n}", "Alex", BASE_TIME + timedelta(minutes=10 * n)) for n in range(5)]
        messages.append(raw("m0", "Alex", BASE_TIME + timedelta(minutes=1)))
        timeline = stitcher.stitch(messages)

        assert [m.index for m in timeline.messages] == list(range(timeline.total_count))
        assert timeline.total_count == 5

    def test_merges_files(self, stitcher):
        first = [raw("hello", "Alex", BASE_TIME, source="a.txt")]
        second = [raw("earlier", "Sam", BASE_TIME - timedelta(days=1), source="b.txt")]
        timeline = stitcher.stitch(first + second)

        assert [m.source for m in timeline.messages] == ["b.txt", "a.txt"]
        assert timeline.date_range.start == BASE_TIME - timedelta(days=1)
        assert timeline.date_range.end == BASE_TIME

    def test_stitching_is_deterministic(self, stitcher):
        messages = [
            raw("one", "Alex", BASE_TIME),
            raw("two", None, None),
            raw("three", "Sam", BASE_TIME + timedelta(hours=60)),
        ]
        assert stitcher.stitch(messages).model_dump_json() == stitcher.stitch(messages).model_dump_json()

    def test_no_messages_is_an_input_error(self, stitcher):
        with pytest.raises(InputError):
            stitcher.stitch([])


class TestDeduplication:
    """Tests for collapsing repeated messages."""

    def test_repeat_within_window_collapses(self, stitcher):
        timeline = stitcher.stitch([
            raw("Same message", "Alex", BASE_TIME),
            raw("Same message", "Alex", BASE_TIME + timedelta(minutes=4)),
        ])
        assert timeline.total_count == 1

    def test_repeat_outside_window_is_kept(self, stitcher):
        timeline = stitcher.stitch([
            raw("Same message", "Alex", BASE_TIME),
            raw("Same message", "Alex", BASE_TIME + timedelta(minutes=6)),
        ])
        assert timeline.total_count == 2

    def test_untimed_repeat_collapses(self, stitcher):
        timeline = stitcher.stitch([
            raw("Same message", "Alex", BASE_TIME),
            raw("Same message", "Alex", None),
        ])
        assert timeline.total_count == 1
        assert timeline.messages[0].resolved_time == BASE_TIME

    def test_only_the_prefix_is_compared(self, stitcher):
        prefix = "x" * 100
        timeline = stitcher.stitch([
            raw(prefix + " ending one", "Alex", BASE_TIME),
            raw(prefix + " ending two", "Alex", BASE_TIME + timedelta(minutes=1)),
        ])
        assert timeline.total_count == 1


class TestGaps:
    """Tests for silence detection."""

    def test_gap_just_over_threshold(self, stitcher):
        timeline = stitcher.stitch([
            raw("before", "Alex", BASE_TIME),
            raw("after", "Sam", BASE_TIME + timedelta(hours=48, minutes=1)),
        ])

        assert len(timeline.gaps) == 1
        gap = timeline.gaps[0]
        assert gap.after_index == 0
        assert gap.duration_hours == 48.0
        assert gap.start == BASE_TIME

    def test_gap_just_under_threshold(self, stitcher):
        timeline = stitcher.stitch([
            raw("before", "Alex", BASE_TIME),
            raw("after", "Sam", BASE_TIME + timedelta(hours=47, minutes=59)),
        ])
        assert timeline.gaps == []


class TestStats:
    """Tests for sender and duration statistics."""

    def test_unknown_sender_bucket(self, stitcher):
        timeline = stitcher.stitch([
            raw("hey", "Alex", BASE_TIME),
            raw("system notice", None, BASE_TIME + timedelta(minutes=1)),
        ])

        assert timeline.senders == ["Alex"]
        assert timeline.stats.messages_per_sender == {"Alex": 1, UNKNOWN_SENDER: 1}
        assert timeline.stats.avg_message_length[UNKNOWN_SENDER] == len("system notice")

    def test_senders_in_first_appearance_order(self, stitcher):
        timeline = stitcher.stitch([
            raw("b", "Sam", BASE_TIME + timedelta(minutes=5)),
            raw("a", "Alex", BASE_TIME),
            raw("c", "Sam", BASE_TIME + timedelta(minutes=9)),
        ])
        assert timeline.senders == ["Alex", "Sam"]

    def test_duration_in_days(self, stitcher):
        timeline = stitcher.stitch([
            raw("start", "Alex", BASE_TIME),
            raw("end", "Sam", BASE_TIME + timedelta(hours=36)),
        ])
        assert timeline.stats.total_duration_days == 1.5

    def test_untimed_timeline_has_no_range(self, stitcher):
        timeline = stitcher.stitch([raw("just text", None, None)])

        assert timeline.date_range.start is None
        assert timeline.stats.total_duration_days == 0.0
        assert timeline.gaps == []
