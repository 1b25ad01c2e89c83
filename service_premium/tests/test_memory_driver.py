"""
Unit tests for the in-memory storage driver.
"""

from datetime import timedelta

import pytest

from service_premium.app.models import GiftCode, PremiumUser
from service_premium.app.persistence import MemoryDriver
from shared.errors import GiftCodeCollisionError, GiftCodeError, StorageUnavailableError
from shared.test_helpers import FakeClock


def make_gift_code(code="GIFT-AAAA-BBBB", **overrides) -> GiftCode:
    fields = {
        "code": code,
        "tier": "pro",
        "duration": "7d",
        "created_at": FakeClock().now,
        "updated_at": FakeClock().now,
    }
    fields.update(overrides)
    return GiftCode(**fields)


class TestMemoryDriver:
    """Test cases for MemoryDriver."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    async def driver(self, clock):
        driver = MemoryDriver(clock=clock)
        await driver.initialize()
        yield driver
        await driver.shutdown()

    @pytest.mark.asyncio
    async def test_requires_initialize(self, clock):
        driver = MemoryDriver(clock=clock)

        with pytest.raises(StorageUnavailableError) as exc_info:
            await driver.get_user("u1")

        assert exc_info.value.message == "Database not initialized"

    @pytest.mark.asyncio
    async def test_fails_after_shutdown(self, driver):
        await driver.shutdown()

        with pytest.raises(StorageUnavailableError):
            await driver.get_all_users()

    @pytest.mark.asyncio
    async def test_set_user_stamps_timestamps(self, driver, clock):
        created = await driver.set_user("u1", PremiumUser(id="u1", tier="plus"))
        clock.advance(hours=1)
        replaced = await driver.set_user("u1", PremiumUser(id="u1", tier="pro"))

        assert created.created_at == clock.now - timedelta(hours=1)
        assert replaced.created_at == created.created_at
        assert replaced.updated_at == clock.now
        assert (await driver.get_user("u1")).tier == "pro"

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, driver):
        await driver.set_user("u1", PremiumUser(id="u1", tier="plus", metadata={"a": 1}))

        user = await driver.get_user("u1")
        user.metadata["a"] = 2

        assert (await driver.get_user("u1")).metadata == {"a": 1}

    @pytest.mark.asyncio
    async def test_remove_user(self, driver):
        await driver.set_user("u1", PremiumUser(id="u1", tier="plus"))

        await driver.remove_user("u1")
        await driver.remove_user("u1")

        assert await driver.get_user("u1") is None

    @pytest.mark.asyncio
    async def test_scans(self, driver, clock):
        await driver.set_user("u1", PremiumUser(id="u1", tier="plus", expires_at=clock.now - timedelta(seconds=1)))
        await driver.set_user("u2", PremiumUser(id="u2", tier="pro", expires_at=clock.now + timedelta(days=1)))
        await driver.set_user("u3", PremiumUser(id="u3", tier="plus"))

        assert {user.id for user in await driver.get_all_users()} == {"u1", "u2", "u3"}
        assert {user.id for user in await driver.get_users_by_tier("plus")} == {"u1", "u3"}
        assert [user.id for user in await driver.get_expired_users()] == ["u1"]
        assert {user.id for user in await driver.get_expired_users(clock.now + timedelta(days=2))} == {"u1", "u2"}

    @pytest.mark.asyncio
    async def test_create_gift_code_collision(self, driver):
        await driver.create_gift_code(make_gift_code())

        with pytest.raises(GiftCodeCollisionError) as exc_info:
            await driver.create_gift_code(make_gift_code())

        assert exc_info.value.gift_code == "GIFT-AAAA-BBBB"

    @pytest.mark.asyncio
    async def test_use_gift_code_is_conditional(self, driver):
        await driver.create_gift_code(make_gift_code(max_uses=2))

        assert await driver.use_gift_code("GIFT-AAAA-BBBB") is True
        assert await driver.use_gift_code("GIFT-AAAA-BBBB") is True
        assert await driver.use_gift_code("GIFT-AAAA-BBBB") is False
        assert await driver.use_gift_code("GIFT-NONE-XXXX") is False
        assert (await driver.get_gift_code("GIFT-AAAA-BBBB")).used_count == 2

    @pytest.mark.asyncio
    async def test_disabled_code_cannot_be_used(self, driver):
        await driver.create_gift_code(make_gift_code())

        await driver.disable_gift_code("GIFT-AAAA-BBBB")

        assert (await driver.get_gift_code("GIFT-AAAA-BBBB")).disabled is True
        assert await driver.use_gift_code("GIFT-AAAA-BBBB") is False

    @pytest.mark.asyncio
    async def test_list_gift_codes_filter(self, driver):
        await driver.create_gift_code(make_gift_code("GIFT-AAAA-AAAA", tier="plus"))
        await driver.create_gift_code(make_gift_code("GIFT-BBBB-BBBB", tier="pro"))
        await driver.create_gift_code(make_gift_code("GIFT-CCCC-CCCC", tier="pro", disabled=True))

        assert len(await driver.list_gift_codes()) == 3
        pro = await driver.list_gift_codes({"tier": "pro", "disabled": False})
        assert [gift_code.code for gift_code in pro] == ["GIFT-BBBB-BBBB"]

    @pytest.mark.asyncio
    async def test_list_gift_codes_unknown_field(self, driver):
        with pytest.raises(GiftCodeError, match="Unknown gift code filter"):
            await driver.list_gift_codes({"owner": "u1"})
