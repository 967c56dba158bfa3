"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """Sync job settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/fleet"

    # Lytx Video Safety API
    lytx_api_key: str | None = None
    lytx_base_url: str = "https://lytx-api.prod7.lv.lytx.com"
    lytx_page_size: int = 100
    lytx_max_pages: int = 500  # Safety limit for a single run
    lytx_timeout_seconds: float = 30.0
    lytx_max_retries: int = 3

    # Sync window
    initial_days_back: int = 7
    checkpoint_overlap_minutes: int = 15

    # Logging
    log_level: LogLevel = "INFO"
    log_file: str | None = None

    # Environment
    debug: bool = False

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
