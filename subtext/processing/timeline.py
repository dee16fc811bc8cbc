"""Stitch parsed messages from many files into one Timeline.

The stitcher is pure: the same messages in the same order always produce
the same Timeline.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional, Sequence

import structlog

from subtext.config import Settings, get_settings
from subtext.errors import InputError
from subtext.models import (
    DateRange,
    GapRecord,
    RawMessage,
    Timeline,
    TimelineMessage,
    TimelineStats,
)
from subtext.processing.timestamps import resolve_timestamp

logger = structlog.get_logger(__name__)

UNKNOWN_SENDER = "Unknown"


class TimelineStitcher:
    """Merges, orders, deduplicates and annotates messages."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def stitch(self, messages: Sequence[RawMessage]) -> Timeline:
        """Build a Timeline from raw messages of every uploaded file.

        Args:
            messages: Parsed messages in encounter order.

        Returns:
            Ordered, deduplicated, gap-annotated Timeline.

        Raises:
            InputError: If there are no messages at all.
        """
        if not messages:
            raise InputError("No messages could be extracted from the uploaded files")

        ordered = self._order(messages)
        deduplicated = self._deduplicate(ordered)

        timeline_messages = [
            TimelineMessage(**message.model_dump(), index=index, resolved_time=resolved)
            for index, (message, resolved) in enumerate(deduplicated)
        ]

        timed = [m for m in timeline_messages if m.resolved_time is not None]
        date_range = DateRange(
            start=timed[0].resolved_time if timed else None,
            end=timed[-1].resolved_time if timed else None,
        )

        timeline = Timeline(
            messages=timeline_messages,
            total_count=len(timeline_messages),
            date_range=date_range,
            gaps=self._find_gaps(timed),
            senders=self._distinct_senders(timeline_messages),
            stats=self._compute_stats(timeline_messages, date_range),
        )

        logger.info(
            "timeline_stitched",
            input_messages=len(messages),
            total_count=timeline.total_count,
            duplicates_dropped=len(ordered) - len(deduplicated),
            gaps=len(timeline.gaps),
            untimed=timeline.total_count - len(timed),
        )
        return timeline

    def _order(self, messages: Sequence[RawMessage]) -> list[tuple[RawMessage, Optional[datetime]]]:
        """Stable sort by resolved time; untimed messages go last in encounter order."""
        resolved = [(message, resolve_timestamp(message.timestamp)) for message in messages]
        timed = [item for item in resolved if item[1] is not None]
        untimed = [item for item in resolved if item[1] is None]
        timed.sort(key=lambda item: item[1])
        return timed + untimed

    def _deduplicate(
        self, ordered: list[tuple[RawMessage, Optional[datetime]]]
    ) -> list[tuple[RawMessage, Optional[datetime]]]:
        """Drop repeats of the same content that arrived close together.

        Overlapping exports of one chat repeat messages; two messages with the
        same leading content collapse when either has no time or they are
        less than the dedup window apart.
        """
        window = timedelta(minutes=self.settings.dedup_window_minutes)
        prefix = self.settings.dedup_prefix_chars
        seen: dict[str, list[Optional[datetime]]] = defaultdict(list)
        kept = []

        for message, resolved in ordered:
            key = message.content.strip()[:prefix]
            duplicate = any(
                earlier is None or resolved is None or abs(resolved - earlier) < window
                for earlier in seen[key]
            )
            if duplicate:
                continue
            seen[key].append(resolved)
            kept.append((message, resolved))

        return kept

    def _find_gaps(self, timed: list[TimelineMessage]) -> list[GapRecord]:
        threshold_hours = self.settings.gap_threshold_hours
        gaps = []
        for previous, current in zip(timed, timed[1:]):
            hours = (current.resolved_time - previous.resolved_time).total_seconds() / 3600
            if hours > threshold_hours:
                gaps.append(GapRecord(
                    after_index=previous.index,
                    duration_hours=round(hours, 1),
                    start=previous.resolved_time,
                    end=current.resolved_time,
                ))
        return gaps

    @staticmethod
    def _distinct_senders(messages: list[TimelineMessage]) -> list[str]:
        senders: list[str] = []
        for message in messages:
            if message.sender and message.sender not in senders:
                senders.append(message.sender)
        return senders

    @staticmethod
    def _compute_stats(messages: list[TimelineMessage], date_range: DateRange) -> TimelineStats:
        counts: dict[str, int] = {}
        lengths: dict[str, int] = {}
        for message in messages:
            sender = message.sender or UNKNOWN_SENDER
            counts[sender] = counts.get(sender, 0) + 1
            lengths[sender] = lengths.get(sender, 0) + len(message.content)

        total_days = 0.0
        if date_range.start is not None and date_range.end is not None:
            total_days = round((date_range.end - date_range.start).total_seconds() / 86400, 1)

        return TimelineStats(
            messages_per_sender=counts,
            avg_message_length={sender: round(lengths[sender] / counts[sender]) for sender in counts},
            total_duration_days=total_days,
        )
