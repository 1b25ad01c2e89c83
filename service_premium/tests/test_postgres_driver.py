"""
Unit tests for the PostgreSQL storage driver with a mocked asyncpg pool.
"""

from unittest.mock import AsyncMock, patch

import asyncpg
import pytest

from service_premium.app.config import PostgresConfig
from service_premium.app.models import GiftCode, PremiumUser
from service_premium.app.persistence import PostgresDriver
from shared.errors import (
    GiftCodeCollisionError,
    GiftCodeError,
    StorageError,
    StorageUnavailableError,
)
from shared.test_helpers import FakeClock


class _Acquire:
    def __init__(self, conn):
        self.conn = conn

    async def __aenter__(self):
        return self.conn

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakePool:
    """Stand-in for asyncpg.Pool handing out a single mocked connection."""

    def __init__(self, conn):
        self.conn = conn
        self.close = AsyncMock()

    def acquire(self):
        return _Acquire(self.conn)


def user_row(clock, **overrides):
    row = {
        "id": "u1",
        "tier": "pro",
        "expires_at": None,
        "metadata": {"source": "admin"},
        "created_at": clock.now,
        "updated_at": clock.now,
    }
    row.update(overrides)
    return row


def gift_code_row(clock, **overrides):
    row = {
        "code": "GIFT-AAAA-BBBB",
        "tier": "pro",
        "duration": "7d",
        "max_uses": 1,
        "used_count": 0,
        "disabled": False,
        "expires_at": None,
        "metadata": "{}",
        "created_at": clock.now,
        "updated_at": clock.now,
    }
    row.update(overrides)
    return row


class TestPostgresDriver:
    """Test cases for PostgresDriver."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def conn(self):
        return AsyncMock()

    @pytest.fixture
    def driver(self, conn, clock):
        driver = PostgresDriver(PostgresConfig(dsn="postgresql://localhost/premium"), clock=clock)
        driver.pool = FakePool(conn)
        return driver

    @pytest.mark.asyncio
    async def test_initialize_creates_pool_and_tables(self, conn, clock):
        driver = PostgresDriver(PostgresConfig(dsn="postgresql://localhost/premium", max_size=5), clock=clock)
        pool = FakePool(conn)

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)) as create_pool:
            await driver.initialize()

        create_pool.assert_awaited_once()
        args, kwargs = create_pool.call_args
        assert args == ("postgresql://localhost/premium",)
        assert kwargs["max_size"] == 5
        assert kwargs["init"] == driver._init_connection

        statements = " ".join(call.args[0] for call in conn.execute.call_args_list)
        assert "CREATE TABLE IF NOT EXISTS premium_users" in statements
        assert "CREATE TABLE IF NOT EXISTS premium_gift_codes" in statements
        assert driver.pool is pool

    @pytest.mark.asyncio
    async def test_initialize_failure_raises_unavailable(self, clock):
        driver = PostgresDriver(PostgresConfig(dsn="postgresql://localhost/premium"), clock=clock)

        with patch("asyncpg.create_pool", new=AsyncMock(side_effect=OSError("connection refused"))):
            with pytest.raises(StorageUnavailableError, match="connection refused"):
                await driver.initialize()

    @pytest.mark.asyncio
    async def test_calls_before_initialize_fail_fast(self, clock):
        driver = PostgresDriver(PostgresConfig(dsn="postgresql://localhost/premium"), clock=clock)

        with pytest.raises(StorageUnavailableError):
            await driver.get_user("u1")

    @pytest.mark.asyncio
    async def test_shutdown_closes_pool(self, driver):
        pool = driver.pool

        await driver.shutdown()
        await driver.shutdown()

        pool.close.assert_awaited_once()
        assert await driver.health_check() is False
        with pytest.raises(StorageUnavailableError):
            await driver.get_all_users()

    @pytest.mark.asyncio
    async def test_get_user(self, driver, conn, clock):
        conn.fetchrow.return_value = user_row(clock)

        user = await driver.get_user("u1")

        assert user == PremiumUser(
            id="u1",
            tier="pro",
            metadata={"source": "admin"},
            created_at=clock.now,
            updated_at=clock.now
        )
        assert conn.fetchrow.call_args.args[1] == "u1"

    @pytest.mark.asyncio
    async def test_get_missing_user(self, driver, conn):
        conn.fetchrow.return_value = None

        assert await driver.get_user("nobody") is None

    @pytest.mark.asyncio
    async def test_set_user_upserts(self, driver, conn, clock):
        conn.fetchrow.return_value = user_row(clock, tier="plus", metadata='{"k": "v"}')

        stored = await driver.set_user("u1", PremiumUser(id="u1", tier="plus", metadata={"k": "v"}))

        query, *params = conn.fetchrow.call_args.args
        assert "ON CONFLICT (id) DO UPDATE" in query
        assert params == ["u1", "plus", None, {"k": "v"}, clock.now]
        assert stored.metadata == {"k": "v"}

    @pytest.mark.asyncio
    async def test_query_errors_become_storage_errors(self, driver, conn):
        conn.fetch.side_effect = asyncpg.PostgresError("relation does not exist")

        with pytest.raises(StorageError):
            await driver.get_all_users()

    @pytest.mark.asyncio
    async def test_get_expired_users_uses_clock(self, driver, conn, clock):
        conn.fetch.return_value = [user_row(clock, expires_at=clock.now)]

        users = await driver.get_expired_users()

        assert [user.id for user in users] == ["u1"]
        assert conn.fetch.call_args.args[1] == clock.now

    @pytest.mark.asyncio
    async def test_create_gift_code_collision(self, driver, conn, clock):
        conn.execute.side_effect = asyncpg.UniqueViolationError("duplicate key")
        gift_code = GiftCode(**gift_code_row(clock, metadata={}))

        with pytest.raises(GiftCodeCollisionError):
            await driver.create_gift_code(gift_code)

    @pytest.mark.asyncio
    async def test_use_gift_code_reports_applied(self, driver, conn):
        conn.execute.return_value = "UPDATE 1"
        assert await driver.use_gift_code("GIFT-AAAA-BBBB") is True

        query = conn.execute.call_args.args[0]
        assert "used_count < max_uses" in query
        assert "NOT disabled" in query

        conn.execute.return_value = "UPDATE 0"
        assert await driver.use_gift_code("GIFT-AAAA-BBBB") is False

    @pytest.mark.asyncio
    async def test_get_gift_code_decodes_metadata(self, driver, conn, clock):
        conn.fetchrow.return_value = gift_code_row(clock, metadata='{"campaign": "spring"}')

        gift_code = await driver.get_gift_code("GIFT-AAAA-BBBB")

        assert gift_code.metadata == {"campaign": "spring"}
        assert gift_code.duration == "7d"

    @pytest.mark.asyncio
    async def test_list_gift_codes_builds_filter(self, driver, conn, clock):
        conn.fetch.return_value = [gift_code_row(clock)]

        gift_codes = await driver.list_gift_codes({"tier": "pro", "disabled": False})

        query, *params = conn.fetch.call_args.args
        assert "WHERE disabled = $1 AND tier = $2" in query
        assert params == [False, "pro"]
        assert [gift_code.code for gift_code in gift_codes] == ["GIFT-AAAA-BBBB"]

    @pytest.mark.asyncio
    async def test_list_gift_codes_rejects_unknown_field(self, driver, conn):
        with pytest.raises(GiftCodeError):
            await driver.list_gift_codes({"code; DROP TABLE premium_users": "x"})

        conn.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_health_check(self, driver, conn):
        conn.fetchval.return_value = 1

        assert await driver.health_check() is True
