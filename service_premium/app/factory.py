"""
Bootstrap for the premium system.
"""

from typing import Optional

from shared.errors import ConfigurationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from .config import PremiumConfig, validate_config
from .persistence import MemoryDriver, PostgresDriver, StorageDriver
from .system import EntitlementSystem

logger = get_logger("premium.factory")


def create_driver(config: PremiumConfig) -> StorageDriver:
    """Build the storage driver named by ``config.db.driver``."""
    driver = config.db.driver
    if driver == "memory":
        return MemoryDriver()
    if driver == "postgres":
        return PostgresDriver(config.db.postgres)
    raise ConfigurationError(f"Unsupported database driver: {driver}")


async def create_entitlement_system(
    config: PremiumConfig,
    driver: Optional[StorageDriver] = None,
    *,
    metrics: Optional[MetricsCollector] = None,
    start_expiry: Optional[bool] = None,
) -> EntitlementSystem:
    """Validate ``config``, initialize storage and return a ready system.

    The expiry sweeper is started when ``config.expiry.enabled`` is set,
    unless ``start_expiry`` overrides it.
    """
    validate_config(config)

    if config.expiry.fallback_tier not in config.tiers:
        logger.warning(
            "Expiry fallback tier is not configured; demotions will fail",
            fallback_tier=config.expiry.fallback_tier
        )

    if driver is None:
        driver = create_driver(config)
    await driver.initialize()

    system = EntitlementSystem(driver, config, metrics=metrics or get_metrics_collector("premium"))

    if config.expiry.enabled if start_expiry is None else start_expiry:
        await system.start_expiry_checker()

    logger.info(
        "Premium system created",
        driver=type(driver).__name__,
        tiers=list(config.tiers),
        cache_enabled=config.cache.enabled
    )
    return system
