"""Unit tests for timestamp resolution."""

from datetime import datetime, timezone

import pytest

from subtext.processing import resolve_timestamp

EXPECTED = datetime(2024, 3, 15, 14, 30, tzinfo=timezone.utc)


class TestResolveTimestamp:
    """Tests for resolve_timestamp."""

    @pytest.mark.parametrize("value", [
        "2024-03-15T14:30:00Z",
        "2024-03-15T16:30:00+02:00",
        "2024-03-15 14:30:00",
        "2024-03-15 14:30",
        "1710513000",
        "1710513000000",
        "3/15/24, 2:30 PM",
        "3/15/24, 2:30 pm",
        "3/15/2024, 14:30",
        "15/03/2024, 14:30",
        "15.03.2024 14:30",
        "Mar 15, 2024 at 2:30 PM",
        "March 15, 2024 at 2:30 PM",
    ])
    def test_known_formats(self, value):
        assert resolve_timestamp(value) == EXPECTED

    def test_seconds_are_kept(self):
        resolved = resolve_timestamp("3/15/24, 2:30:15 PM")
        assert resolved == datetime(2024, 3, 15, 14, 30, 15, tzinfo=timezone.utc)

    def test_narrow_no_break_space_before_meridiem(self):
        assert resolve_timestamp("3/15/24, 2:30\u202fPM") == EXPECTED

    def test_results_are_utc_aware(self):
        resolved = resolve_timestamp("2024-03-15T16:30:00+02:00")
        assert resolved.tzinfo == timezone.utc

    @pytest.mark.parametrize("value", [None, "", "   ", "yesterday", "12345", "10:42 PM"])
    def test_unresolvable(self, value):
        assert resolve_timestamp(value) is None

    def test_implausible_years_are_rejected(self):
        assert resolve_timestamp("1/1/99, 10:00") is None
        assert resolve_timestamp("100000000") is None
