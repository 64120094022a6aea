"""
Configuration management for Coal.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoalSettings(BaseSettings):
    """Cache settings, read from ``COAL_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="COAL_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Store
    redis_url: str = Field(default="redis://localhost:6379/0")
    socket_timeout: float = Field(default=5.0, gt=0)

    # Keys
    prefix: str = Field(default="coal:")

    # Expiry and locking
    default_ttl_seconds: float = Field(default=30)
    default_timeout_ms: int = Field(default=3000, gt=0)
    lock_retry_min_ms: int = Field(default=10, gt=0)
    lock_retry_max_ms: int = Field(default=30, gt=0)
    lock_ttl_padding_ms: int = Field(default=1000, ge=0)

    # Observability
    log_level: str = Field(default="info")

    @model_validator(mode="after")
    def _check_retry_bounds(self) -> "CoalSettings":
        if self.lock_retry_min_ms > self.lock_retry_max_ms:
            raise ValueError("lock_retry_min_ms must not exceed lock_retry_max_ms")
        return self


def get_settings(**overrides) -> CoalSettings:
    """Build settings from the environment, with explicit overrides on top."""
    return CoalSettings(**overrides)
