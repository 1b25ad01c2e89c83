"""
Shared process configuration for the premium tiers system.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PremiumSettings(BaseSettings):
    """Process-level settings read from the environment."""

    model_config = SettingsConfigDict(
        env_prefix="PREMIUM_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Domain configuration (tiers, features, cache, events)
    config_file: Optional[str] = Field(default=None)

    # Storage
    db_driver: Optional[str] = Field(default=None)
    postgres_dsn: Optional[str] = Field(default=None)


def get_settings(**overrides) -> PremiumSettings:
    """Get process settings, optionally overriding environment values."""
    return PremiumSettings(**overrides)
