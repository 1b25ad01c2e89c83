"""
Domain configuration for the premium system: tiers, features, cache,
events, expiry sweep and storage.
"""

from pathlib import Path
from typing import Dict, Any, Optional, List, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from shared.config import PremiumSettings
from shared.errors import ConfigurationError, DurationFormatError
from .time_parser import parse_time_string

SUPPORTED_DRIVERS = ("memory", "postgres")


class PostgresConfig(BaseModel):
    """PostgreSQL connection options."""
    dsn: Optional[str] = None
    min_size: int = 2
    max_size: int = 10
    command_timeout: float = 30


class DatabaseConfig(BaseModel):
    """Storage driver selection."""
    driver: Optional[str] = None
    postgres: Optional[PostgresConfig] = None


class TierDefinition(BaseModel):
    """Tier metadata. Declaration order in ``PremiumConfig.tiers`` is rank order."""
    expires_in: Optional[str] = None
    price: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CacheConfig(BaseModel):
    """Lookaside cache tuning."""
    enabled: bool = False
    ttl: Optional[float] = Field(None, description="Default time to live in seconds")
    max_size: Optional[int] = Field(None, description="Maximum number of entries")


class EventsConfig(BaseModel):
    """Per-event emission toggles."""
    emit_expired: bool = True
    emit_upgraded: bool = True
    emit_downgraded: bool = True
    emit_code_redeemed: bool = True


class ExpiryConfig(BaseModel):
    """Expiry sweep settings."""
    enabled: bool = True
    interval_seconds: float = 60.0
    fallback_tier: str = "free"


class PremiumConfig(BaseModel):
    """Complete premium system configuration."""
    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    tiers: Dict[str, TierDefinition] = Field(default_factory=dict)
    features: Dict[str, List[str]] = Field(default_factory=dict)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    expiry: ExpiryConfig = Field(default_factory=ExpiryConfig)


def validate_config(config: PremiumConfig) -> None:
    """Validate a configuration, raising ``ConfigurationError`` on the first problem."""
    if not config.db or not config.db.driver:
        raise ConfigurationError("Database driver must be specified")

    if config.db.driver not in SUPPORTED_DRIVERS:
        raise ConfigurationError(
            f"Unsupported database driver: {config.db.driver}",
            {"supported": list(SUPPORTED_DRIVERS)}
        )

    if not config.tiers:
        raise ConfigurationError("At least one tier must be defined")

    if not config.features:
        raise ConfigurationError("Features must be defined for tiers")

    for tier_name, tier in config.tiers.items():
        if tier_name not in config.features:
            raise ConfigurationError(f"Features not defined for tier: {tier_name}")
        if tier.expires_in is not None:
            try:
                parse_time_string(tier.expires_in)
            except DurationFormatError as e:
                raise ConfigurationError(
                    f"Invalid expires_in for tier {tier_name}: {tier.expires_in}",
                    {"tier": tier_name}
                ) from e

    if config.db.driver == "postgres":
        if not config.db.postgres or not config.db.postgres.dsn:
            raise ConfigurationError("PostgreSQL DSN must be specified")

    if config.expiry.interval_seconds <= 0:
        raise ConfigurationError("Expiry interval must be positive")


def load_premium_config(path: Union[str, Path]) -> PremiumConfig:
    """Load a configuration from a YAML file."""
    config_path = Path(path)
    try:
        with config_path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {config_path}") from e

    try:
        return PremiumConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration in {config_path}",
            {"errors": e.errors(include_url=False)}
        ) from e


def apply_settings(config: PremiumConfig, settings: PremiumSettings) -> PremiumConfig:
    """Return ``config`` with storage options overridden by process settings."""
    db = config.db.model_copy(deep=True)
    if settings.db_driver:
        db.driver = settings.db_driver
    if settings.postgres_dsn:
        postgres = db.postgres or PostgresConfig()
        db.postgres = postgres.model_copy(update={"dsn": settings.postgres_dsn})
    return config.model_copy(update={"db": db})
