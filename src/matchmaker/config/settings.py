"""Runtime settings for the matchmaker core."""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MatchmakerSettings(BaseSettings):
    """Environment-driven configuration (``MATCHMAKER_*`` variables)."""

    model_config = SettingsConfigDict(
        env_prefix="MATCHMAKER_",
        env_file=".env",
        extra="forbid",
        populate_by_name=True,
    )

    database_url: str = Field("sqlite:///matchmaker.db", min_length=1)
    request_cooldown_days: int = Field(14, ge=0, le=365)
    auto_withdraw_on_accept: bool = True
    exclude_decided_supervisors: bool = True
    max_retries: int = Field(3, ge=0, le=10)
    recommendation_workers: int = Field(4, ge=1, le=64)
    log_level: str = "INFO"
    log_file: str | None = None

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unsupported log level: {value}")
        return level


@lru_cache(maxsize=1)
def get_settings(**overrides: object) -> MatchmakerSettings:
    """Return cached settings object with optional overrides for tests."""

    if overrides:
        return MatchmakerSettings(**overrides)
    return MatchmakerSettings()


__all__ = ["MatchmakerSettings", "get_settings"]
