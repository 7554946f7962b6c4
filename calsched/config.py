"""Centralized configuration loaded from environment variables."""

from __future__ import annotations

from enum import StrEnum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExportStrategy(StrEnum):
    """How recurring events are delivered to the provider."""

    NATIVE = "native"  # one event carrying an RRULE
    EXPAND = "expand"  # one event per expanded occurrence


class Settings(BaseSettings):
    """Application-wide settings sourced from .env / environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────────────
    calsched_env: str = "development"
    calsched_log_level: str = "INFO"

    # ── Calendar provider ────────────────────────────────────────────
    provider_base_url: str = "https://www.googleapis.com/calendar/v3"
    provider_access_token: str = ""
    provider_calendar_id: str = "primary"
    provider_timeout_seconds: float = Field(default=30.0, gt=0)

    # ── Export ───────────────────────────────────────────────────────
    export_max_attempts: int = Field(default=4, ge=1)
    export_backoff_base: float = Field(default=0.5, ge=0)
    export_backoff_max: float = Field(default=30.0, ge=0)
    export_strategy: ExportStrategy = ExportStrategy.NATIVE

    # ── Recurrence ───────────────────────────────────────────────────
    expansion_horizon_days: int = Field(default=366, ge=1)
    default_timezone: str = ""

    @field_validator("provider_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("default_timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        value = value.strip()
        if value:
            try:
                ZoneInfo(value)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ValueError(f"unknown timezone: {value}") from exc
        return value

    @field_validator("export_strategy", mode="before")
    @classmethod
    def _lower_strategy(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    # ── Derived ──────────────────────────────────────────────────────
    @property
    def has_credentials(self) -> bool:
        """Check whether a provider access token is configured."""
        return bool(self.provider_access_token)

    @property
    def default_zone(self) -> Optional[ZoneInfo]:
        """Return the configured default zone, if any."""
        return ZoneInfo(self.default_timezone) if self.default_timezone else None


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the singleton Settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
