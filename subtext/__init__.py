"""Conversation timeline ingestion and staged analysis engine."""

__version__ = "0.1.0"
