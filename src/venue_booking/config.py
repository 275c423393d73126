"""Configuration objects for the venue booking core."""

from __future__ import annotations

from typing import Optional

from pydantic import Field, HttpUrl, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class Settings(BaseSettings):
    """Runtime configuration sourced from ``VENUE_BOOKING_*`` environment variables."""

    provider_api_key: Optional[SecretStr] = Field(
        default=None,
        description="API key sent in the X-API-Key header. Checked at call time.",
    )
    provider_base_url: HttpUrl = Field(default="https://connect.offthecouch.io")
    timeout_seconds: float = Field(default=10.0, gt=0)
    read_retry_attempts: int = Field(default=2, ge=1)
    cache_max_entries: int = Field(default=500, ge=1)
    confirmation_prefix: str = Field(default="LL")
    timezone: str = Field(default="America/New_York")
    max_days_ahead: int = Field(default=90, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="VENUE_BOOKING_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("confirmation_prefix")
    @classmethod
    def strip_prefix(cls, value: str) -> str:
        """Confirmation codes are ``PREFIX-<id>``; keep the prefix tidy."""
        value = value.strip().rstrip("-")
        if not value:
            raise ValueError("confirmation_prefix must not be empty")
        return value

    @property
    def base_url(self) -> str:
        return str(self.provider_base_url).rstrip("/")

    def api_key(self) -> str:
        """Resolve the provider API key, raising if it has not been configured."""
        if self.provider_api_key is None or not self.provider_api_key.get_secret_value().strip():
            raise ConfigurationError(
                "VENUE_BOOKING_PROVIDER_API_KEY is not configured. "
                "Add it to .env for local development."
            )
        return self.provider_api_key.get_secret_value().strip()
