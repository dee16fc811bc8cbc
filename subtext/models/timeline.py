"""Timeline model: the sole hand-off artifact between ingestion and analysis."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .messages import TimelineMessage


class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: Optional[datetime] = None
    end: Optional[datetime] = None


class GapRecord(BaseModel):
    """A silence longer than the gap threshold between adjacent messages."""

    model_config = ConfigDict(frozen=True)

    after_index: int = Field(ge=0, description="Index of the message before the silence")
    duration_hours: float = Field(ge=0)
    start: datetime
    end: datetime


class TimelineStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    messages_per_sender: dict[str, int] = Field(default_factory=dict)
    avg_message_length: dict[str, int] = Field(default_factory=dict)
    total_duration_days: float = 0.0


class Timeline(BaseModel):
    """Deduplicated, chronologically ordered view of a conversation."""

    model_config = ConfigDict(frozen=True)

    messages: list[TimelineMessage] = Field(default_factory=list)
    total_count: int = Field(default=0, ge=0)
    date_range: DateRange = Field(default_factory=DateRange)
    gaps: list[GapRecord] = Field(default_factory=list)
    senders: list[str] = Field(
        default_factory=list,
        description="Distinct senders in order of first appearance",
    )
    stats: TimelineStats = Field(default_factory=TimelineStats)

    def messages_in_range(self, start: int, end: int) -> list[TimelineMessage]:
        """Messages with start <= index <= end."""
        return [m for m in self.messages if start <= m.index <= end]

    @property
    def combined_text(self) -> str:
        return "\n".join(m.content for m in self.messages)
