"""
Duet — Application Configuration

Loads all configuration from environment variables (and an optional .env file)
using Pydantic Settings.  A cached ``get_settings()`` helper is provided so that
FastAPI dependency-injection (and any other call-site) always receives the same
validated instance without re-parsing the environment on every request.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Duet demo."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Persistent store
    # ------------------------------------------------------------------ #
    STORE_BACKEND: str = "memory"  # memory / sql / redis
    DATABASE_URL: str = "sqlite+aiosqlite:///./duet.db"
    REDIS_URL: str = "redis://localhost:6379/0"
    STORE_CONNECT_ATTEMPTS: int = 3

    # ------------------------------------------------------------------ #
    # Match ranking
    # ------------------------------------------------------------------ #
    MATCH_LIMIT: int = 10
    MATCH_SCORE_INCREMENT: int = 10  # per "yes" rating naming the candidate
    MATCH_JITTER_MAX: int = 30       # exclusive upper bound
    DISPLAY_SCORE_MIN: int = 60
    DISPLAY_SCORE_MAX: int = 95

    # ------------------------------------------------------------------ #
    # Responder simulation
    # ------------------------------------------------------------------ #
    REPLY_DELAY_MIN_MS: int = 2000
    REPLY_DELAY_MAX_MS: int = 4000  # exclusive upper bound
    CANCEL_REPLY_ON_CLOSE: bool = False

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @field_validator("STORE_BACKEND")
    @classmethod
    def _backend_must_be_known(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("memory", "sql", "redis"):
            raise ValueError(f"STORE_BACKEND must be memory, sql or redis, got {v!r}")
        return v

    @field_validator("MATCH_LIMIT", "MATCH_JITTER_MAX", "REPLY_DELAY_MIN_MS", "STORE_CONNECT_ATTEMPTS")
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v

    @model_validator(mode="after")
    def _ranges_must_be_ordered(self) -> "Settings":
        if self.DISPLAY_SCORE_MIN > self.DISPLAY_SCORE_MAX:
            raise ValueError("DISPLAY_SCORE_MIN must not exceed DISPLAY_SCORE_MAX")
        if self.REPLY_DELAY_MIN_MS >= self.REPLY_DELAY_MAX_MS:
            raise ValueError("REPLY_DELAY_MIN_MS must be below REPLY_DELAY_MAX_MS")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime.  Import this function anywhere you
    need access to configuration::

        from duet.config import get_settings
        settings = get_settings()
    """
    return Settings()
