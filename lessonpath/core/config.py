"""
Configuration settings for lessonpath.

Uses Pydantic Settings for environment variable management with .env file support.
Every variable is prefixed with LESSONPATH_ (e.g. LESSONPATH_TUTOR_API_URL).
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LESSONPATH_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Tutor service (text generation)
    # ========================================
    tutor_api_url: str = Field(
        default="http://localhost:8787",
        description="Base URL of the tutor service",
    )
    tutor_endpoint: str = Field(
        default="/api/ai/tutor",
        description="Path that accepts {prompt, systemPrompt, mode} and returns {message}",
    )
    tutor_api_key: str | None = Field(
        default=None,
        description="Bearer token sent to the tutor service",
    )
    tutor_timeout_seconds: float | None = Field(
        default=None,
        description="Transport timeout; None leaves requests bounded only by the retry envelope",
    )
    tutor_mode: str = Field(
        default="learning",
        description="Mode sent with checkpoint generation requests",
    )
    max_prompt_chars: int = Field(
        default=1200,
        description="Prompts are truncated to this many characters before sending",
    )

    # ========================================
    # Checkpoint generation
    # ========================================
    checkpoint_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Remote generation attempts before falling back",
    )
    checkpoint_backoff_ms: int = Field(
        default=400,
        ge=0,
        description="Delay between attempts, multiplied by the attempt number",
    )
    checkpoint_content_chars: int = Field(
        default=750,
        description="Section excerpt length included in generation prompts",
    )
    remediation_threshold: int = Field(
        default=2,
        ge=1,
        description="Wrong checkpoint answers before the quick review appears",
    )

    # ========================================
    # Cache & telemetry
    # ========================================
    cache_path: Path | None = Field(
        default=None,
        description="JSON file backing the checkpoint cache (in-memory when unset)",
    )
    telemetry_enabled: bool = Field(
        default=True,
        description="Emit checkpoint and remediation telemetry events",
    )
    telemetry_path: Path | None = Field(
        default=None,
        description="JSONL file for telemetry events (log-only when unset)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(
        default="INFO",
        description="Loguru level for the stderr sink",
    )
    log_file: Path | None = Field(
        default=None,
        description="Optional rotating log file",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
