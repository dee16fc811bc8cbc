"""LLM integration module."""

from .chains import (
    LangChainReasoningService,
    ReasoningService,
    StagePrompt,
    parse_json_response,
)
from .client import LLMSettings, create_llm_client, get_llm_settings

__all__ = [
    "LangChainReasoningService",
    "LLMSettings",
    "ReasoningService",
    "StagePrompt",
    "create_llm_client",
    "get_llm_settings",
    "parse_json_response",
]
