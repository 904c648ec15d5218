"""
Configuration settings for the War Room assessment engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="WARROOM_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Persistence
    # ========================================
    database_url: str = Field(
        default="sqlite:///warroom.db",
        description="SQLAlchemy connection string for assessment records",
    )

    # ========================================
    # AI Grading
    # ========================================
    gemini_api_key: str | None = Field(
        default=None,
        description="Google Gemini API key for free-text grading",
    )
    ai_model: str = Field(
        default="gemini-1.5-flash",
        description="Model used to grade open-text answers",
    )
    ai_grading_enabled: bool = Field(
        default=True,
        description="Send open-text answers to the AI grader (fallback score otherwise)",
    )
    ai_temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for grading calls",
    )
    ai_max_output_tokens: int = Field(
        default=1024,
        description="Token cap for a grading response",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Minimum level written to stderr",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path (rotated at 10 MB)",
    )

    def has_ai_configured(self) -> bool:
        """Check if the AI grader can be used."""
        return bool(self.ai_grading_enabled and self.gemini_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
