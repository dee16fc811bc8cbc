"""Ollama LLM client configuration."""

from functools import lru_cache
from typing import Optional

from langchain_ollama import OllamaLLM
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """LLM configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    ollama_base_url: str = "http://localhost:11434"
    model_name: str = "gpt-oss:20b"

    # Per-stage overrides; unset stages use model_name
    triage_model_name: Optional[str] = None
    specialist_model_name: Optional[str] = None
    verifier_model_name: Optional[str] = None
    responder_model_name: Optional[str] = None

    temperature: float = 0.2
    request_timeout: int = 120
    call_attempts: int = 2
    num_ctx: int = 16384
    num_predict: int = 4096  # Max tokens to generate

    def model_for(self, stage: str) -> str:
        """Model name to use for a stage."""
        overrides = {
            "triage": self.triage_model_name,
            "clinician": self.specialist_model_name,
            "pattern_matcher": self.specialist_model_name,
            "historian": self.specialist_model_name,
            "verifier": self.verifier_model_name,
            "answer": self.responder_model_name,
            "reply_suggestion": self.responder_model_name,
        }
        return overrides.get(stage) or self.model_name


@lru_cache
def get_llm_settings() -> LLMSettings:
    """Get cached LLM settings."""
    return LLMSettings()


def create_llm_client(model: Optional[str] = None, settings: Optional[LLMSettings] = None) -> OllamaLLM:
    """Create configured Ollama LLM client.

    Args:
        model: Model name. Uses settings.model_name if not provided.
        settings: Optional custom settings. Uses defaults if not provided.

    Returns:
        Configured OllamaLLM instance.
    """
    settings = settings or get_llm_settings()

    return OllamaLLM(
        model=model or settings.model_name,
        base_url=settings.ollama_base_url,
        temperature=settings.temperature,
        num_ctx=settings.num_ctx,
        num_predict=settings.num_predict,
        # JSON is recovered from free text in chains.py; format="json"
        # truncates output on some models.
        client_kwargs={"timeout": settings.request_timeout},
    )
