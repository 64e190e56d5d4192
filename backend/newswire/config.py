"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Newswire"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False)
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./newswire.db",
        description="Async database URL (SQLAlchemy format)",
    )
    database_timeout_seconds: float = Field(default=10.0, gt=0)

    # Recency cache
    redis_url: str | None = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for the recency cache; unset disables caching",
    )
    redis_timeout_seconds: float = Field(default=5.0, gt=0)
    cache_ttl_seconds: int = Field(default=3600, ge=1)
    cache_max_items: int = Field(default=100, ge=1)

    # API keys (all optional)
    guardian_api_key: str | None = Field(default=None)
    guardian_base_url: str = Field(default="https://content.guardianapis.com")
    admin_api_key: str | None = Field(default=None)

    # Scheduler
    fetch_interval_minutes: int = Field(
        default=5,
        ge=1,
        description="Interval between ingestion cycles",
    )
    startup_fetch_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Delay before the first cycle after start-up",
    )
    retention_days: int = Field(default=7, ge=1)
    retention_hour: int = Field(default=2, ge=0, le=23)
    retention_minute: int = Field(default=0, ge=0, le=59)

    # Fetching
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    fetch_deadline_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Upper bound on waiting for all sources in one cycle",
    )
    entries_per_feed: int = Field(default=10, ge=1)
    api_page_size: int = Field(default=10, ge=1, le=50)

    # Deduplication
    similarity_threshold: float = Field(default=0.8)

    # Realtime
    websocket_send_timeout_seconds: float = Field(default=5.0, gt=0)

    # CORS
    cors_origins: list[str] = Field(default=["http://localhost:3000"])

    @field_validator("similarity_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Similarity threshold must be between 0 and 1")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
