"""Timeline construction and conversation metrics."""

from .timeline import TimelineStitcher
from .timestamps import resolve_timestamp

__all__ = ["TimelineStitcher", "resolve_timestamp"]
