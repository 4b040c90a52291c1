"""Configuration for the Supfit sync core.

Values come from ``SUPFIT_*`` environment variables. The defaults mirror the
policy observed in the mobile client: signed URLs are granted for five
minutes and cached for four and a half, list refreshes back off from 1.5 s up
to 30 s over four attempts, and form saves are debounced for one second.
"""

from __future__ import annotations

from datetime import timedelta

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncConfig(BaseSettings):
    """Pydantic settings container for the sync services."""

    model_config = SettingsConfigDict(env_prefix="SUPFIT_")

    backend_url: str = Field(
        default="http://localhost:54321",
        description="Base URL of the hosted backend (REST, storage and functions).",
    )
    anon_key: str = Field(
        default="anon-key",
        min_length=1,
        description="Public API key sent with every backend request.",
    )
    jwt_secret: str | None = Field(
        default=None,
        description="Optional secret used to verify session tokens locally.",
    )
    media_bucket: str = Field(
        default="user-uploads",
        min_length=1,
        description="Private bucket holding coach and client media.",
    )
    signing_function: str | None = Field(
        default="sign-media-url",
        description="Serverless function issuing signed URLs; empty disables it.",
    )
    allow_direct_sign_fallback: bool = Field(
        default=True,
        description=(
            "Fall back to direct storage signing when the signing function fails. "
            "Hardened deployments may disable it since it bypasses the function's checks."
        ),
    )
    signed_url_grant_seconds: int = Field(
        default=5 * 60,
        ge=1,
        description="Lifetime requested for directly signed URLs.",
    )
    signed_url_safety_margin_seconds: int = Field(
        default=30,
        ge=1,
        description="Margin subtracted from the grant before a cached URL is refreshed.",
    )
    retry_base_delay_ms: int = Field(default=1_500, ge=1)
    retry_cap_ms: int = Field(default=30_000, ge=1)
    retry_max_attempts: int = Field(default=4, ge=0)
    save_cooldown_ms: int = Field(
        default=1_000,
        ge=0,
        description="Window in which repeated form saves are ignored.",
    )
    request_timeout_seconds: float = Field(default=10.0, ge=0.1)
    local_store_url: str = Field(
        default="sqlite:///supfit_local.db",
        description="SQLAlchemy URL of the durable local key-value store.",
    )
    counters_table: str = Field(default="coach_workouts")
    targets_table: str = Field(default="user_targets")
    upload_folder: str = Field(default="workouts")
    log_level: str = Field(default="INFO", description="Level passed to configure_logging by the scripts.")

    @model_validator(mode="after")
    def _check_margin(self) -> "SyncConfig":
        if self.signed_url_safety_margin_seconds >= self.signed_url_grant_seconds:
            raise ValueError("signed_url_safety_margin_seconds must be below the grant lifetime")
        if self.retry_cap_ms < self.retry_base_delay_ms:
            raise ValueError("retry_cap_ms cannot be lower than retry_base_delay_ms")
        return self

    @property
    def signed_url_grant(self) -> timedelta:
        return timedelta(seconds=self.signed_url_grant_seconds)

    @property
    def signed_url_safety_margin(self) -> timedelta:
        return timedelta(seconds=self.signed_url_safety_margin_seconds)

    @property
    def save_cooldown(self) -> timedelta:
        return timedelta(milliseconds=self.save_cooldown_ms)

    @classmethod
    def build_default(cls) -> "SyncConfig":
        """Construct configuration from the environment with default fallbacks."""

        return cls()


__all__ = ["SyncConfig"]
