"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. App-specific
settings use the ``SAFEHARBOR_`` prefix; vendor / infrastructure settings
use their canonical environment variable names via ``validation_alias``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the SafeHarbor application.

    Environment variables are loaded from a ``.env`` file when present.
    App-specific keys are prefixed with ``SAFEHARBOR_``; Twilio, TomTom,
    Google and Redis keys use their standard names.
    """

    model_config = SettingsConfigDict(
        env_prefix="SAFEHARBOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # ── API ────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(default=8000, validation_alias="API_PORT")
    public_base_url: str = Field(default="", validation_alias="PUBLIC_BASE_URL")

    # ── Rate Limiting ──────────────────────────────────────────────────
    rate_limit_per_minute: int = Field(default=60, validation_alias="RATE_LIMIT_PER_MINUTE")
    trusted_proxy_count: int = Field(default=1, ge=0, validation_alias="TRUSTED_PROXY_COUNT")

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # ── Redis ──────────────────────────────────────────────────────────
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # ── Twilio ─────────────────────────────────────────────────────────
    twilio_account_sid: str = Field(default="", validation_alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str = Field(default="", validation_alias="TWILIO_AUTH_TOKEN")
    twilio_phone_number: str = Field(default="", validation_alias="TWILIO_PHONE_NUMBER")
    target_phone_number: str = Field(default="+13614259843", validation_alias="TARGET_PHONE_NUMBER")

    # ── SOS call behaviour ─────────────────────────────────────────────
    call_mode: Literal["inline-announcement", "scripted-ivr"] = "inline-announcement"
    ivr_max_turns: int = Field(default=6, ge=1)
    ivr_max_duration_seconds: int = Field(default=300, ge=30)
    ivr_gather_timeout_seconds: int = Field(default=10, ge=1)
    spell_contact_digits: bool = True
    verify_webhook_signatures: bool = True
    call_context_backend: Literal["memory", "redis"] = "memory"
    call_context_ttl_seconds: int = 3_600  # 1 hour
    profile_db_path: str = "profiles.db"

    # ── Maps / routing ─────────────────────────────────────────────────
    tomtom_api_key: str = Field(default="", validation_alias="TOMTOM_API_KEY")
    google_maps_api_key: str = Field(default="", validation_alias="GOOGLE_MAPS_API_KEY")
    routing_timeout_seconds: float = 10.0
    geocode_cache_ttl: int = 86_400  # 24 hours
    shelter_search_radius_m: int = 10_000
    shelter_search_max_results: int = 10
    default_route_count: int = 3

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number)


# Module-level singleton, read by the application entry point only.
settings = Settings()
