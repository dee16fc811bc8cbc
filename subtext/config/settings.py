"""Application settings using Pydantic."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Timeline Stitching
    dedup_window_minutes: float = 5.0
    dedup_prefix_chars: int = 100
    gap_threshold_hours: float = 48.0

    # Ingestion
    max_archive_depth: int = 3

    # Deep Analysis
    deep_min_messages: int = 50
    llm_context_char_limit: int = 40000
    verifier_context_char_limit: int = 30000

    # Verification
    veto_threshold: int = 70
    min_corroborating_instances: int = 2
    low_evidence_confidence_cap: int = 50
    quote_match_threshold: int = 85

    # Job Carrier
    worker_concurrency: int = 5
    job_max_attempts: int = 3
    job_backoff_seconds: float = 5.0
    job_backoff_max_seconds: float = 300.0

    # Artifact Retention
    storage_dir: str = "data/artifacts"
    ephemeral_ttl_seconds: int = 24 * 60 * 60
    report_ttl_seconds: int = 7 * 24 * 60 * 60

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
