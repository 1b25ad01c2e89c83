"""
Entitlement system façade.

Validates tier and feature names, serializes writes per user, decides
upgrade/downgrade transitions and emits lifecycle events. All reads and
writes go through ``EntitlementStore`` and ``GiftCodeStore``; the expiry
sweeper calls back into this class rather than the storage driver.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from shared.errors import FeatureError, TierError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .cache import LookasideCache
from .config import PremiumConfig
from .events import (
    EventBus,
    EventKind,
    EventListener,
    GiftCodeRedeemed,
    SubscriptionExpired,
    TierDowngraded,
    TierUpgraded,
)
from .locks import KeyedLock
from .models import GiftCode, GiftCodeOptions, PremiumUser, RedemptionResult, UserUpdate
from .persistence import StorageDriver
from .services.expiry import ExpirySweeper, SweepReport
from .services.gift_codes import (
    CODE_DISABLED,
    CODE_EXHAUSTED,
    CODE_EXPIRED,
    CODE_TIER_UNAVAILABLE,
    INVALID_CODE,
    GiftCodeStore,
)
from .services.users import EntitlementStore
from .tiers import TierCatalog

REDEMPTION_OUTCOMES = {
    INVALID_CODE: "invalid",
    CODE_DISABLED: "disabled",
    CODE_EXHAUSTED: "exhausted",
    CODE_EXPIRED: "expired",
    CODE_TIER_UNAVAILABLE: "tier_unavailable",
}


class EntitlementSystem:
    """Premium tiers, features and gift codes for a set of users."""

    def __init__(
        self,
        driver: StorageDriver,
        config: PremiumConfig,
        *,
        cache: Optional[LookasideCache] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.driver = driver
        self.config = config
        self.metrics = metrics
        self.logger = get_logger("premium.system")
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.catalog = TierCatalog.from_config(config)
        self.cache = cache or LookasideCache(
            enabled=config.cache.enabled,
            ttl=config.cache.ttl,
            max_size=config.cache.max_size,
            metrics=metrics
        )
        self.events = EventBus()
        self.users = EntitlementStore(driver, self.cache)
        self.gift_codes = GiftCodeStore(driver, self.cache, clock=self._clock)
        self.expiry_sweeper = ExpirySweeper(
            self,
            interval_seconds=config.expiry.interval_seconds,
            metrics=metrics
        )

        self._locks = KeyedLock()
        self._closed = False

    # Validation
    def is_valid_tier(self, tier: str) -> bool:
        return self.catalog.is_valid_tier(tier)

    def is_valid_feature(self, feature: str) -> bool:
        return self.catalog.is_valid_feature(feature)

    def get_features_for_tier(self, tier: str) -> List[str]:
        return self.catalog.features_for(tier)

    def _require_tier(self, tier: str) -> None:
        if not self.is_valid_tier(tier):
            raise TierError(tier)

    # Users
    async def get_user(self, user_id: str) -> Optional[PremiumUser]:
        return await self.users.get_user(user_id)

    async def set_user(
        self,
        user_id: str,
        update: Union[UserUpdate, Mapping[str, Any]],
    ) -> PremiumUser:
        """Replace a user's entitlement.

        Raises ``TierError`` before any write if the tier is not configured.
        Emits ``upgraded`` or ``downgraded`` when an existing user's tier
        moves up or down the declared order.
        """
        if not isinstance(update, UserUpdate):
            update = UserUpdate.model_validate(update)
        self._require_tier(update.tier)

        async with self._locks.acquire(user_id):
            return await self._write_user(user_id, update)

    async def remove_user(self, user_id: str) -> None:
        async with self._locks.acquire(user_id):
            await self.users.remove_user(user_id)
        self.logger.info("User removed", user_id=user_id)

    async def has_tier(self, user_id: str, required_tier: str) -> bool:
        """Whether the user's tier ranks at or above ``required_tier``."""
        self._require_tier(required_tier)

        user = await self.get_user(user_id)
        if user is None:
            return False
        return self.catalog.rank(user.tier) >= self.catalog.rank(required_tier)

    async def has_feature(self, user_id: str, feature: str) -> bool:
        if not self.is_valid_feature(feature):
            raise FeatureError(feature)

        user = await self.get_user(user_id)
        if user is None or not self.is_valid_tier(user.tier):
            return False
        return self.catalog.get(user.tier).grants(feature)

    async def get_all_users(self) -> List[PremiumUser]:
        return await self.users.get_all_users()

    async def get_users_by_tier(self, tier: str) -> List[PremiumUser]:
        self._require_tier(tier)
        return await self.users.get_users_by_tier(tier)

    async def get_expired_users(self) -> List[PremiumUser]:
        return await self.users.get_expired_users()

    async def _write_user(self, user_id: str, update: UserUpdate) -> PremiumUser:
        # Caller holds the user's lock
        old_user = await self.users.get_user(user_id)
        user = PremiumUser(
            id=user_id,
            tier=update.tier,
            expires_at=update.expires_at,
            metadata=dict(update.metadata)
        )
        stored = await self.users.set_user(user_id, user)

        self.logger.info(
            "User tier updated",
            user_id=user_id,
            tier=stored.tier,
            expires_at=stored.expires_at.isoformat() if stored.expires_at else None
        )

        if old_user is not None and old_user.tier != stored.tier:
            self._emit_transition(user_id, old_user.tier, stored.tier)
        return stored

    def _emit_transition(self, user_id: str, old_tier: str, new_tier: str) -> None:
        old_rank = self.catalog.rank(old_tier)
        new_rank = self.catalog.rank(new_tier)
        events = self.config.events

        if new_rank > old_rank:
            self._record_transition("upgrade")
            if events.emit_upgraded:
                self.events.emit(TierUpgraded(user_id=user_id, old_tier=old_tier, new_tier=new_tier))
        elif new_rank < old_rank:
            self._record_transition("downgrade")
            if events.emit_downgraded:
                self.events.emit(TierDowngraded(user_id=user_id, old_tier=old_tier, new_tier=new_tier))

    # Expiry
    async def demote_expired_user(self, user_id: str) -> bool:
        """Move a lapsed user to the fallback tier.

        The user is re-read under its lock; returns False without writing if
        it was removed or renewed since it was listed as expired.
        """
        fallback_tier = self.config.expiry.fallback_tier

        async with self._locks.acquire(user_id):
            user = await self.users.get_user(user_id)
            if user is None or user.expires_at is None or user.expires_at >= self._clock():
                self.logger.debug("Skipping user no longer expired", user_id=user_id)
                return False

            if self.config.events.emit_expired:
                self.events.emit(SubscriptionExpired(user_id=user_id, tier=user.tier))

            self._require_tier(fallback_tier)
            await self._write_user(
                user_id,
                UserUpdate(
                    tier=fallback_tier,
                    expires_at=None,
                    metadata={**user.metadata, "previousTier": user.tier}
                )
            )

        self.logger.info(
            "Expired premium subscription",
            user_id=user_id,
            previous_tier=user.tier,
            tier=fallback_tier
        )
        return True

    async def check_expirations(self) -> SweepReport:
        """Run one expiry sweep now."""
        return await self.expiry_sweeper.check_expirations()

    async def start_expiry_checker(self) -> None:
        await self.expiry_sweeper.start()

    # Gift codes
    async def create_gift_code(self, options: Union[GiftCodeOptions, Mapping[str, Any]]) -> str:
        """Create a gift code; raises ``TierError`` or ``DurationFormatError`` on bad options."""
        if not isinstance(options, GiftCodeOptions):
            options = GiftCodeOptions.model_validate(options)
        self._require_tier(options.tier)

        return await self.gift_codes.create_gift_code(options)

    async def redeem_gift_code(self, user_id: str, code: str) -> RedemptionResult:
        """Redeem ``code`` for ``user_id``.

        Failures are returned as results, never raised. A code granting a
        tier that is no longer configured fails without using up the code.
        On success the user is moved to the code's tier with the granted
        expiry and the previous metadata plus ``giftCode`` and ``redeemedAt``;
        ``code_redeemed`` is emitted after any upgrade/downgrade event.
        """
        async with self._locks.acquire(user_id):
            result = await self.gift_codes.redeem_gift_code(code, self.is_valid_tier)
            if not result.success:
                self._record_redemption(REDEMPTION_OUTCOMES.get(result.error, "failed"))
                self.logger.info("Gift code redemption failed", user_id=user_id, code=code, reason=result.error)
                return result

            user = await self.users.get_user(user_id)
            metadata: Dict[str, Any] = dict(user.metadata) if user else {}
            metadata.update({
                "giftCode": code,
                "redeemedAt": self._clock().isoformat()
            })
            await self._write_user(
                user_id,
                UserUpdate(tier=result.tier, expires_at=result.expires_at, metadata=metadata)
            )

            self._record_redemption("success")
            if self.config.events.emit_code_redeemed:
                self.events.emit(GiftCodeRedeemed(
                    user_id=user_id,
                    code=code,
                    tier=result.tier,
                    expires_at=result.expires_at
                ))

        self.logger.info("Gift code redeemed", user_id=user_id, code=code, tier=result.tier)
        return result

    async def get_gift_code(self, code: str) -> Optional[GiftCode]:
        return await self.gift_codes.get_gift_code(code)

    async def disable_gift_code(self, code: str) -> None:
        await self.gift_codes.disable_gift_code(code)

    async def list_gift_codes(self, filter: Optional[Mapping[str, Any]] = None) -> List[GiftCode]:
        return await self.gift_codes.list_gift_codes(filter)

    # Events
    def subscribe(self, kind: EventKind, listener: EventListener) -> None:
        self.events.subscribe(kind, listener)

    def unsubscribe(self, kind: EventKind, listener: EventListener) -> bool:
        return self.events.unsubscribe(kind, listener)

    # Lifecycle
    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()

    async def shutdown(self) -> None:
        """Stop the sweeper, clear the cache and release storage. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        await self.expiry_sweeper.stop()
        self.cache.clear()
        await self.driver.shutdown()

        self.logger.info("Premium system shut down")

    def _record_transition(self, direction: str) -> None:
        if self.metrics:
            self.metrics.record_tier_transition(direction)

    def _record_redemption(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_redemption(outcome)
