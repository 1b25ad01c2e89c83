"""
PostgreSQL storage driver for the premium system.
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

import asyncpg

from shared.errors import GiftCodeCollisionError, StorageError, StorageUnavailableError
from shared.logging import get_logger
from ..config import PostgresConfig
from ..models import GiftCode, PremiumUser
from .base import StorageDriver, validate_gift_code_filter


class PostgresDriver(StorageDriver):
    """PostgreSQL storage backed by an asyncpg connection pool."""

    def __init__(self, config: PostgresConfig, clock: Optional[Callable[[], datetime]] = None):
        self.config = config
        self.logger = get_logger("premium.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def initialize(self) -> None:
        """Open the pool and create tables."""
        try:
            self.pool = await asyncpg.create_pool(
                self.config.dsn,
                min_size=self.config.min_size,
                max_size=self.config.max_size,
                command_timeout=self.config.command_timeout,
                init=self._init_connection
            )

            await self._create_tables()

            self.logger.info("PostgreSQL storage started")

        except (asyncpg.PostgresError, OSError) as e:
            self.logger.error("Failed to start PostgreSQL storage", error=str(e))
            raise StorageUnavailableError(f"Cannot connect to PostgreSQL: {e}") from e

    async def shutdown(self) -> None:
        """Close the pool."""
        if self.pool:
            pool, self.pool = self.pool, None
            await pool.close()
            self.logger.info("PostgreSQL storage stopped")

    @staticmethod
    async def _init_connection(conn) -> None:
        await conn.set_type_codec(
            "jsonb",
            encoder=lambda value: json.dumps(value, default=str),
            decoder=json.loads,
            schema="pg_catalog"
        )

    async def _create_tables(self) -> None:
        """Create database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS premium_users (
                    id VARCHAR(255) PRIMARY KEY,
                    tier VARCHAR(100) NOT NULL,
                    expires_at TIMESTAMP WITH TIME ZONE,
                    metadata JSONB NOT NULL DEFAULT '{}',
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL,
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL
                );
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS premium_gift_codes (
                    code VARCHAR(64) PRIMARY KEY,
                    tier VARCHAR(100) NOT NULL,
                    duration VARCHAR(64),
                    max_uses INTEGER NOT NULL DEFAULT 1,
                    used_count INTEGER NOT NULL DEFAULT 0,
                    disabled BOOLEAN NOT NULL DEFAULT FALSE,
                    expires_at TIMESTAMP WITH TIME ZONE,
                    metadata JSONB NOT NULL DEFAULT '{}',
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL,
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL,
                    CHECK (used_count <= max_uses)
                );
            """)

            # Create indexes
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_premium_users_tier ON premium_users(tier);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_premium_users_expires_at
                ON premium_users(expires_at) WHERE expires_at IS NOT NULL;
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_premium_gift_codes_tier ON premium_gift_codes(tier);
            """)

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise StorageUnavailableError()
        return self.pool

    async def _fetch(self, query: str, *args) -> List[asyncpg.Record]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except asyncpg.PostgresError as e:
            self.logger.error("PostgreSQL query failed", error=str(e))
            raise StorageError(str(e)) from e

    async def _fetchrow(self, query: str, *args) -> Optional[asyncpg.Record]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except asyncpg.PostgresError as e:
            self.logger.error("PostgreSQL query failed", error=str(e))
            raise StorageError(str(e)) from e

    async def _execute(self, query: str, *args) -> str:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.execute(query, *args)
        except asyncpg.PostgresError as e:
            self.logger.error("PostgreSQL statement failed", error=str(e))
            raise StorageError(str(e)) from e

    # User methods
    async def get_user(self, user_id: str) -> Optional[PremiumUser]:
        row = await self._fetchrow("""
            SELECT * FROM premium_users WHERE id = $1
        """, user_id)
        return self._row_to_user(row) if row else None

    async def set_user(self, user_id: str, user: PremiumUser) -> PremiumUser:
        now = self._clock()
        row = await self._fetchrow("""
            INSERT INTO premium_users (id, tier, expires_at, metadata, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $5)
            ON CONFLICT (id) DO UPDATE SET
                tier = EXCLUDED.tier,
                expires_at = EXCLUDED.expires_at,
                metadata = EXCLUDED.metadata,
                updated_at = EXCLUDED.updated_at
            RETURNING *
        """, user_id, user.tier, user.expires_at, user.metadata, now)
        return self._row_to_user(row)

    async def remove_user(self, user_id: str) -> None:
        result = await self._execute("""
            DELETE FROM premium_users WHERE id = $1
        """, user_id)
        if result != "DELETE 1":
            self.logger.debug("User not found for deletion", user_id=user_id)

    async def get_all_users(self) -> List[PremiumUser]:
        rows = await self._fetch("""
            SELECT * FROM premium_users ORDER BY created_at ASC
        """)
        return [self._row_to_user(row) for row in rows]

    async def get_users_by_tier(self, tier: str) -> List[PremiumUser]:
        rows = await self._fetch("""
            SELECT * FROM premium_users WHERE tier = $1 ORDER BY created_at ASC
        """, tier)
        return [self._row_to_user(row) for row in rows]

    async def get_expired_users(self, now: Optional[datetime] = None) -> List[PremiumUser]:
        rows = await self._fetch("""
            SELECT * FROM premium_users
            WHERE expires_at IS NOT NULL AND expires_at < $1
            ORDER BY expires_at ASC
        """, now or self._clock())
        return [self._row_to_user(row) for row in rows]

    # Gift code methods
    async def create_gift_code(self, gift_code: GiftCode) -> str:
        pool = self._require_pool()
        now = self._clock()
        try:
            async with pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO premium_gift_codes (
                        code, tier, duration, max_uses, used_count, disabled,
                        expires_at, metadata, created_at, updated_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $9)
                """,
                    gift_code.code, gift_code.tier, gift_code.duration, gift_code.max_uses,
                    gift_code.used_count, gift_code.disabled, gift_code.expires_at,
                    gift_code.metadata, now
                )
        except asyncpg.UniqueViolationError as e:
            raise GiftCodeCollisionError(gift_code.code) from e
        except asyncpg.PostgresError as e:
            self.logger.error("Error creating gift code", error=str(e))
            raise StorageError(str(e)) from e

        return gift_code.code

    async def get_gift_code(self, code: str) -> Optional[GiftCode]:
        row = await self._fetchrow("""
            SELECT * FROM premium_gift_codes WHERE code = $1
        """, code)
        return self._row_to_gift_code(row) if row else None

    async def use_gift_code(self, code: str) -> bool:
        result = await self._execute("""
            UPDATE premium_gift_codes
            SET used_count = used_count + 1, updated_at = $2
            WHERE code = $1 AND used_count < max_uses AND NOT disabled
        """, code, self._clock())
        return result == "UPDATE 1"

    async def disable_gift_code(self, code: str) -> None:
        await self._execute("""
            UPDATE premium_gift_codes
            SET disabled = TRUE, updated_at = $2
            WHERE code = $1
        """, code, self._clock())

    async def list_gift_codes(self, filter: Optional[Mapping[str, Any]] = None) -> List[GiftCode]:
        conditions = validate_gift_code_filter(filter)
        query = "SELECT * FROM premium_gift_codes"
        params: List[Any] = []

        # Column names come from the validated field whitelist
        clauses = []
        for field, value in sorted(conditions.items()):
            params.append(value)
            clauses.append(f"{field} = ${len(params)}")
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at ASC"

        rows = await self._fetch(query, *params)
        return [self._row_to_gift_code(row) for row in rows]

    def _row_to_user(self, row) -> PremiumUser:
        """Convert database row to PremiumUser."""
        return PremiumUser(
            id=row['id'],
            tier=row['tier'],
            expires_at=row['expires_at'],
            metadata=self._decode_metadata(row['metadata']),
            created_at=row['created_at'],
            updated_at=row['updated_at']
        )

    def _row_to_gift_code(self, row) -> GiftCode:
        """Convert database row to GiftCode."""
        return GiftCode(
            code=row['code'],
            tier=row['tier'],
            duration=row['duration'],
            max_uses=row['max_uses'],
            used_count=row['used_count'],
            disabled=row['disabled'],
            expires_at=row['expires_at'],
            metadata=self._decode_metadata(row['metadata']),
            created_at=row['created_at'],
            updated_at=row['updated_at']
        )

    @staticmethod
    def _decode_metadata(value: Any) -> Dict[str, Any]:
        if value is None:
            return {}
        if isinstance(value, str):
            return json.loads(value)
        return dict(value)

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (asyncpg.PostgresError, OSError):
            return False
