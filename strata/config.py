"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache); tests that need other values build Settings(...) directly
    - persistence_backend selects the adapter wired in main.lifespan

Design Decisions:
    - Framework knobs live beside infrastructure ones so one
      env file describes a deployment
    - Defaults run the in-memory backend with no database at all
"""

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Persistence
    persistence_backend: Literal["memory", "sql"] = "memory"
    database_url: str = (
        "postgresql+asyncpg://strata:strata@db:5432/strata"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Framework
    cache_ttl_seconds: float = 300.0
    pagination_max_limit: int = 100
    require_authentication: bool = True

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    # External log sink, off unless explicitly enabled
    log_external_enabled: bool = False
    log_external_endpoint: str | None = None
    log_external_api_key: str | None = None
    log_external_timeout_seconds: float = 2.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
