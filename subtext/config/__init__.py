"""Configuration: settings and prompt templates."""

from subtext.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
