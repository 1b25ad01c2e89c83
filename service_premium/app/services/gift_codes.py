"""
Gift code generation, lookup, redemption and listing.
"""

import json
import secrets
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional

from shared.errors import GiftCodeCollisionError, GiftCodeError
from shared.logging import get_logger
from ..cache import LookasideCache
from ..models import GiftCode, GiftCodeOptions, RedemptionResult, detached
from ..persistence import StorageDriver, validate_gift_code_filter
from ..time_parser import parse_duration, parse_time_string

# No 0/O or 1/I
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_PREFIX = "GIFT"
CODE_GROUP_LENGTH = 4
MAX_GENERATION_ATTEMPTS = 5

ALL_GIFT_CODES_KEY = "giftCodes:all"

INVALID_CODE = "Invalid gift code"
CODE_DISABLED = "Gift code has been disabled"
CODE_EXHAUSTED = "Gift code has reached maximum uses"
CODE_EXPIRED = "Gift code has expired"
CODE_TIER_UNAVAILABLE = "Gift code tier is no longer available"


def gift_code_key(code: str) -> str:
    return f"giftCode:{code}"


def gift_code_filter_key(filter: Optional[Mapping[str, Any]]) -> str:
    """Cache key for a list filter; equal filters map to the same key."""
    if not filter:
        return ALL_GIFT_CODES_KEY
    canonical = json.dumps(dict(filter), sort_keys=True, separators=(",", ":"), default=str)
    return f"giftCodes:filter:{canonical}"


def generate_code() -> str:
    """Generate a code formatted ``GIFT-XXXX-XXXX``."""
    groups = [
        "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_GROUP_LENGTH))
        for _ in range(2)
    ]
    return "-".join([CODE_PREFIX, *groups])


class GiftCodeStore:
    """Gift code lifecycle over a storage driver and the shared cache."""

    def __init__(
        self,
        driver: StorageDriver,
        cache: LookasideCache,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        code_factory: Callable[[], str] = generate_code,
    ):
        self.driver = driver
        self.cache = cache
        self.logger = get_logger("premium.gift_codes")
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._code_factory = code_factory

    async def create_gift_code(self, options: GiftCodeOptions) -> str:
        """Create a gift code and return its code string.

        Generated codes that collide with an existing code are regenerated,
        up to ``MAX_GENERATION_ATTEMPTS`` times.
        """
        if options.duration is not None:
            parse_time_string(options.duration)

        now = self._clock()
        for attempt in range(1, MAX_GENERATION_ATTEMPTS + 1):
            gift_code = GiftCode(
                code=self._code_factory(),
                tier=options.tier,
                duration=options.duration,
                max_uses=options.max_uses or 1,
                used_count=0,
                disabled=False,
                expires_at=options.expires_at,
                metadata=dict(options.metadata),
                created_at=now,
                updated_at=now
            )
            try:
                code = await self.driver.create_gift_code(gift_code)
            except GiftCodeCollisionError:
                self.logger.warning("Gift code collision, regenerating", attempt=attempt)
                continue

            self.cache.delete(ALL_GIFT_CODES_KEY)
            self.logger.info(
                "Gift code created",
                code=code,
                tier=gift_code.tier,
                max_uses=gift_code.max_uses,
                duration=gift_code.duration
            )
            return code

        raise GiftCodeError(
            f"Could not generate a unique gift code after {MAX_GENERATION_ATTEMPTS} attempts"
        )

    async def get_gift_code(self, code: str) -> Optional[GiftCode]:
        cached = self.cache.get(gift_code_key(code))
        if cached is not None:
            return detached(cached)

        gift_code = await self.driver.get_gift_code(code)
        if gift_code is not None:
            self.cache.set(gift_code_key(code), detached(gift_code))
        return gift_code

    async def redeem_gift_code(
        self,
        code: str,
        tier_available: Callable[[str], bool] = lambda tier: True,
    ) -> RedemptionResult:
        """Validate and consume one use of ``code``.

        Checks run in order against the stored record and stop at the first
        failure. A code whose tier fails ``tier_available`` is refused
        without consuming a use. The use count is incremented with a conditional store
        update, so a code can never be used more than ``max_uses`` times.
        """
        gift_code = await self.driver.get_gift_code(code)
        now = self._clock()

        failure = self._check_redeemable(gift_code, now)
        if failure:
            return RedemptionResult.failure(failure)
        if not tier_available(gift_code.tier):
            self.logger.warning("Gift code grants unconfigured tier", code=code, tier=gift_code.tier)
            return RedemptionResult.failure(CODE_TIER_UNAVAILABLE)

        expires_at = None
        if gift_code.duration:
            expires_at = now + parse_duration(gift_code.duration)

        applied = await self.driver.use_gift_code(code)
        self._invalidate(code)

        if not applied:
            # Lost a race with another redemption or a disable
            latest = await self.driver.get_gift_code(code)
            failure = self._check_redeemable(latest, self._clock()) or CODE_EXHAUSTED
            self.logger.info("Gift code redemption lost race", code=code, reason=failure)
            return RedemptionResult.failure(failure)

        return RedemptionResult(success=True, tier=gift_code.tier, expires_at=expires_at)

    async def disable_gift_code(self, code: str) -> None:
        await self.driver.disable_gift_code(code)
        self._invalidate(code)
        self.logger.info("Gift code disabled", code=code)

    async def list_gift_codes(self, filter: Optional[Mapping[str, Any]] = None) -> List[GiftCode]:
        conditions = validate_gift_code_filter(filter)
        cache_key = gift_code_filter_key(conditions)

        cached = self.cache.get(cache_key)
        if cached is not None:
            return detached(cached)

        gift_codes = await self.driver.list_gift_codes(conditions or None)
        self.cache.set(cache_key, detached(gift_codes))
        return gift_codes

    @staticmethod
    def _check_redeemable(gift_code: Optional[GiftCode], now: datetime) -> Optional[str]:
        if gift_code is None:
            return INVALID_CODE
        if gift_code.disabled:
            return CODE_DISABLED
        if gift_code.used_count >= gift_code.max_uses:
            return CODE_EXHAUSTED
        if gift_code.expires_at is not None and gift_code.expires_at < now:
            return CODE_EXPIRED
        return None

    def _invalidate(self, code: str) -> None:
        self.cache.delete(gift_code_key(code))
        self.cache.delete(ALL_GIFT_CODES_KEY)
