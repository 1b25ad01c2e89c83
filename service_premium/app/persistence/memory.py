"""
In-memory storage driver.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from shared.errors import GiftCodeCollisionError, StorageUnavailableError
from shared.logging import get_logger
from ..models import GiftCode, PremiumUser
from .base import StorageDriver, validate_gift_code_filter


class MemoryDriver(StorageDriver):
    """Process-local storage, used for tests and local development."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.logger = get_logger("premium.persistence.memory")
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._users: Dict[str, PremiumUser] = {}
        self._gift_codes: Dict[str, GiftCode] = {}
        self._ready = False

    async def initialize(self) -> None:
        self._ready = True
        self.logger.info("Memory storage initialized")

    async def shutdown(self) -> None:
        if self._ready:
            self._ready = False
            self.logger.info("Memory storage stopped")

    def _require_ready(self) -> None:
        if not self._ready:
            raise StorageUnavailableError()

    # User methods
    async def get_user(self, user_id: str) -> Optional[PremiumUser]:
        self._require_ready()
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def set_user(self, user_id: str, user: PremiumUser) -> PremiumUser:
        self._require_ready()
        now = self._clock()
        existing = self._users.get(user_id)
        stored = user.model_copy(
            update={
                "id": user_id,
                "created_at": existing.created_at if existing else now,
                "updated_at": now,
            },
            deep=True,
        )
        self._users[user_id] = stored
        return stored.model_copy(deep=True)

    async def remove_user(self, user_id: str) -> None:
        self._require_ready()
        self._users.pop(user_id, None)

    async def get_all_users(self) -> List[PremiumUser]:
        self._require_ready()
        return [user.model_copy(deep=True) for user in self._users.values()]

    async def get_users_by_tier(self, tier: str) -> List[PremiumUser]:
        self._require_ready()
        return [user.model_copy(deep=True) for user in self._users.values() if user.tier == tier]

    async def get_expired_users(self, now: Optional[datetime] = None) -> List[PremiumUser]:
        self._require_ready()
        now = now or self._clock()
        return [
            user.model_copy(deep=True)
            for user in self._users.values()
            if user.expires_at is not None and user.expires_at < now
        ]

    # Gift code methods
    async def create_gift_code(self, gift_code: GiftCode) -> str:
        self._require_ready()
        if gift_code.code in self._gift_codes:
            raise GiftCodeCollisionError(gift_code.code)
        now = self._clock()
        self._gift_codes[gift_code.code] = gift_code.model_copy(
            update={"created_at": now, "updated_at": now},
            deep=True,
        )
        return gift_code.code

    async def get_gift_code(self, code: str) -> Optional[GiftCode]:
        self._require_ready()
        gift_code = self._gift_codes.get(code)
        return gift_code.model_copy(deep=True) if gift_code else None

    async def use_gift_code(self, code: str) -> bool:
        self._require_ready()
        gift_code = self._gift_codes.get(code)
        if gift_code is None or gift_code.disabled or gift_code.used_count >= gift_code.max_uses:
            return False
        gift_code.used_count += 1
        gift_code.updated_at = self._clock()
        return True

    async def disable_gift_code(self, code: str) -> None:
        self._require_ready()
        gift_code = self._gift_codes.get(code)
        if gift_code is not None:
            gift_code.disabled = True
            gift_code.updated_at = self._clock()

    async def list_gift_codes(self, filter: Optional[Mapping[str, Any]] = None) -> List[GiftCode]:
        self._require_ready()
        conditions = validate_gift_code_filter(filter)
        return [
            gift_code.model_copy(deep=True)
            for gift_code in self._gift_codes.values()
            if all(getattr(gift_code, field) == value for field, value in conditions.items())
        ]
