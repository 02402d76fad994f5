"""
Shared configuration management for the JWKS cache.
"""

from datetime import timedelta

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="JWKS_SERVICE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class JWKSConfig(BaseSettings):
    """Settings of a JWKS client. Immutable once built."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="JWKS_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # URL of the JWKS endpoint
    url: str = Field(default="")

    # cache successful requests at least for this duration regardless of cache headers
    cache_min: timedelta = Field(default=timedelta(minutes=1))

    # cache successful requests at most for this duration regardless of cache headers, 0 means no ceiling
    cache_max: timedelta = Field(default=timedelta(hours=1))

    # cache failed responses for this duration, 0 means every due check retries
    cache_errors: timedelta = Field(default=timedelta(seconds=30))

    # keep serving the old keys for this duration after the first error
    keep_stale_keys: timedelta = Field(default=timedelta(minutes=5))

    # stop the refresh loops when a refresh fails
    exit_on_error: bool = Field(default=False)

    # seconds between refresh checks
    refresh_interval: float = Field(default=1.0, gt=0)

    # timeout of the default HTTP transport, in seconds
    http_timeout: float = Field(default=5.0, gt=0)

    @field_validator("cache_min", "cache_max", "cache_errors", "keep_stale_keys")
    @classmethod
    def _non_negative(cls, value: timedelta) -> timedelta:
        if value < timedelta(0):
            raise ValueError("duration must not be negative")
        return value


class KeyDirectoryConfig(BaseSettings):
    """Settings of the directory key loader."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="KEYS_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # the directory to load the keys from
    dir: str = Field(default="./keys")

    # seconds between directory scans, 0 disables watching
    watch_interval: float = Field(default=1.0, ge=0)

    # raise load errors instead of logging them
    fail_on_error: bool = Field(default=False)

    @property
    def watch_on(self) -> bool:
        return self.watch_interval > 0


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"
    jwks: JWKSConfig = Field(default_factory=JWKSConfig)

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
