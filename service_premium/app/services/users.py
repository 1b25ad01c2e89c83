"""
Read-through / write-invalidate access to premium users.
"""

from typing import List, Optional

from shared.logging import get_logger
from ..cache import LookasideCache
from ..models import PremiumUser, detached
from ..persistence import StorageDriver

ALL_USERS_KEY = "users:all"
EXPIRED_USERS_KEY = "users:expired"
EXPIRED_USERS_TTL = 60


def user_key(user_id: str) -> str:
    return f"user:{user_id}"


def tier_key(tier: str) -> str:
    return f"users:tier:{tier}"


class EntitlementStore:
    """Caches user records and the list views derived from them.

    Per-user keys are refreshed on write; list keys are only invalidated
    and repopulate on their next read. Records are copied into and out of
    the cache, so callers never hold the cached instance.
    """

    def __init__(self, driver: StorageDriver, cache: LookasideCache):
        self.driver = driver
        self.cache = cache
        self.logger = get_logger("premium.users")

    async def get_user(self, user_id: str) -> Optional[PremiumUser]:
        cached = self.cache.get(user_key(user_id))
        if cached is not None:
            return detached(cached)

        user = await self.driver.get_user(user_id)
        if user is not None:
            self.cache.set(user_key(user_id), detached(user))
        return user

    async def set_user(self, user_id: str, user: PremiumUser) -> PremiumUser:
        stored = await self.driver.set_user(user_id, user)

        self.cache.set(user_key(user_id), detached(stored))
        self.cache.delete(tier_key(stored.tier))
        self.cache.delete(ALL_USERS_KEY)
        self.cache.delete(EXPIRED_USERS_KEY)

        self.logger.debug("User stored", user_id=user_id, tier=stored.tier)
        return stored

    async def remove_user(self, user_id: str) -> None:
        # Read first so the old tier's list view can be invalidated
        user = await self.get_user(user_id)

        await self.driver.remove_user(user_id)

        self.cache.delete(user_key(user_id))
        if user is not None:
            self.cache.delete(tier_key(user.tier))
        self.cache.delete(ALL_USERS_KEY)
        self.cache.delete(EXPIRED_USERS_KEY)

        self.logger.debug("User removed", user_id=user_id, found=user is not None)

    async def get_all_users(self) -> List[PremiumUser]:
        return await self._read_list(ALL_USERS_KEY, self.driver.get_all_users)

    async def get_users_by_tier(self, tier: str) -> List[PremiumUser]:
        return await self._read_list(tier_key(tier), lambda: self.driver.get_users_by_tier(tier))

    async def get_expired_users(self) -> List[PremiumUser]:
        """Always reads the store; the cached copy only dampens repeat scans."""
        users = await self.driver.get_expired_users()
        self.cache.set(EXPIRED_USERS_KEY, detached(users), EXPIRED_USERS_TTL)
        return users

    async def _read_list(self, key, load) -> List[PremiumUser]:
        cached = self.cache.get(key)
        if cached is not None:
            return detached(cached)

        users = await load()
        self.cache.set(key, detached(users))
        return users
