"""Application settings loaded from environment variables.

Uses Pydantic Settings with ``.env`` file support. Every variable carries the
``LEXIBOX_`` prefix, e.g. ``LEXIBOX_OPENAI_API_KEY``.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the trainer."""

    model_config = SettingsConfigDict(
        env_prefix="LEXIBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    db_path: str = Field(
        default=str(Path.home() / ".lexibox" / "lexibox.db"),
        description="SQLite database file",
    )
    log_level: str = Field(default="WARNING", description="loguru sink level for the CLI")

    # OpenAI-compatible content service
    openai_api_key: str = Field(default="", description="API key; empty disables the AI generators")
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    openai_model: str = Field(default="gpt-4o-mini")
    openai_timeout: float = Field(default=30.0, ge=1.0)
    openai_max_retries: int = Field(default=3, ge=0)

    exam_word_count: int = Field(default=10, ge=1, le=100)
    default_source_language: str = Field(default="English")
    default_target_language: str = Field(default="Spanish")

    @property
    def ai_enabled(self) -> bool:
        return bool(self.openai_api_key.strip())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
