"""
Configuration Management for the household core

Uses pydantic-settings for type-safe configuration from environment variables.

All tunables live here: the REST collaborator endpoint, the identity-sync
debounce and retry limits, local storage location, and the household product
limits (member cap, shared-household cap, split tolerance).
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiSettings(BaseSettings):
    """REST backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="HOUSEHOLD_API_",
        extra="ignore"
    )

    base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the household finance REST backend"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=120,
        description="Request timeout; an expired request is a NetworkError"
    )

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class SyncSettings(BaseSettings):
    """Identity sync (auth state -> backend user) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="IDENTITY_SYNC_",
        extra="ignore"
    )

    debounce_ms: int = Field(
        default=500,
        ge=0,
        le=10_000,
        description="Window that collapses bursts of auth-state changes into one sync"
    )
    max_attempts: int = Field(
        default=4,
        ge=1,
        le=10,
        description="Total sync attempts (first try plus retries) on network errors"
    )
    backoff_initial_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="First retry delay; doubles on each further retry"
    )
    backoff_max_seconds: float = Field(
        default=8.0,
        ge=0.0,
        description="Upper bound for a single retry delay"
    )

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000


class HouseholdSettings(BaseSettings):
    """
    Household product limits.

    These are product decisions, kept configurable rather than baked in.
    """

    model_config = SettingsConfigDict(
        env_prefix="HOUSEHOLD_",
        extra="ignore"
    )

    max_active_members: int = Field(
        default=2,
        ge=1,
        description="Maximum active members in one shared household"
    )
    max_shared_households: int = Field(
        default=1,
        ge=0,
        description="Maximum shared households a user may belong to"
    )
    split_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Accepted difference between a transaction total and the sum of its splits"
    )
    default_household_name: str = Field(
        default="My Finances",
        min_length=1,
        description="Display name used for a locally cached household without a name"
    )


class StorageSettings(BaseSettings):
    """Client-local key/value storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCAL_STORAGE_",
        extra="ignore"
    )

    path: Optional[str] = Field(
        default=None,
        description="JSON file backing local storage; in-memory when unset"
    )
    profile_max_age_seconds: int = Field(
        default=3600,
        ge=0,
        description="Staleness ceiling for the cached user profile"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for structured logs"
    )
    audit_buffer_size: int = Field(
        default=500,
        ge=0,
        description="How many recent audit events are kept in memory"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def api(self) -> ApiSettings:
        return ApiSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def household(self) -> HouseholdSettings:
        return HouseholdSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings sections.

    Returns a dict of {section_name: is_valid}, plus a
    "<section>_error" entry for every section that failed.
    """
    results = {}
    settings = get_settings()

    for section in ("api", "sync", "household", "storage", "app"):
        try:
            getattr(settings, section)
            results[section] = True
        except Exception as e:
            results[section] = False
            results[f"{section}_error"] = str(e)

    return results
