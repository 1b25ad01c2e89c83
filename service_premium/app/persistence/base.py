"""
Storage driver contract for premium users and gift codes.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from shared.errors import GiftCodeError
from ..models import GiftCode, PremiumUser

GIFT_CODE_FILTER_FIELDS = frozenset(GiftCode.model_fields)


def validate_gift_code_filter(filter: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return the filter as a dict, rejecting fields gift codes do not have."""
    if not filter:
        return {}
    unknown = sorted(set(filter) - GIFT_CODE_FILTER_FIELDS)
    if unknown:
        raise GiftCodeError(
            f"Unknown gift code filter field(s): {', '.join(unknown)}",
            {"fields": unknown}
        )
    return dict(filter)


class StorageDriver(ABC):
    """Durable CRUD for users and gift codes.

    Every method raises ``StorageUnavailableError`` when called before
    ``initialize()`` or after ``shutdown()``, and ``StorageError`` when the
    backend fails.
    """

    @abstractmethod
    async def initialize(self) -> None:
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        ...

    # User methods
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[PremiumUser]:
        ...

    @abstractmethod
    async def set_user(self, user_id: str, user: PremiumUser) -> PremiumUser:
        """Insert or fully replace a user, returning the stored record.

        ``created_at`` is preserved across replaces; ``updated_at`` is set
        to the current time.
        """

    @abstractmethod
    async def remove_user(self, user_id: str) -> None:
        ...

    @abstractmethod
    async def get_all_users(self) -> List[PremiumUser]:
        ...

    @abstractmethod
    async def get_users_by_tier(self, tier: str) -> List[PremiumUser]:
        ...

    @abstractmethod
    async def get_expired_users(self, now: Optional[datetime] = None) -> List[PremiumUser]:
        """Users whose ``expires_at`` is set and earlier than ``now``."""

    # Gift code methods
    @abstractmethod
    async def create_gift_code(self, gift_code: GiftCode) -> str:
        """Insert a gift code; raises ``GiftCodeCollisionError`` on a duplicate."""

    @abstractmethod
    async def get_gift_code(self, code: str) -> Optional[GiftCode]:
        ...

    @abstractmethod
    async def use_gift_code(self, code: str) -> bool:
        """Increment ``used_count`` only while the code is enabled and
        ``used_count < max_uses``. Returns whether the increment applied."""

    @abstractmethod
    async def disable_gift_code(self, code: str) -> None:
        ...

    @abstractmethod
    async def list_gift_codes(self, filter: Optional[Mapping[str, Any]] = None) -> List[GiftCode]:
        """Gift codes matching every ``field == value`` pair in ``filter``."""
