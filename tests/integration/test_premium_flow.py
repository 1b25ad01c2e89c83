"""
Integration tests for the premium entitlement flow.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest
import yaml

from scripts.run_expiry_sweep import sweep
from service_premium.app.config import load_premium_config
from service_premium.app.events import EventKind
from service_premium.app.factory import create_entitlement_system
from shared.test_helpers import EventRecorder, PremiumDataFactory


class TestPremiumFlow:
    """Integration tests for the complete premium flow."""

    @pytest.fixture
    def config_path(self, tmp_path):
        """Write a YAML configuration file."""
        path = tmp_path / "premium.yaml"
        raw = PremiumDataFactory.create_config_dict(
            cache={"enabled": True, "ttl": 60, "max_size": 50},
            expiry={"enabled": True, "interval_seconds": 3600}
        )
        path.write_text(yaml.safe_dump(raw, sort_keys=False))
        return path

    @pytest.fixture
    async def system(self, config_path):
        system = await create_entitlement_system(load_premium_config(config_path))
        yield system
        await system.shutdown()

    @pytest.mark.asyncio
    async def test_gift_code_to_expiry_flow(self, system):
        """Redeem a code, lapse, and get demoted by a sweep."""
        recorder = EventRecorder()
        for kind in EventKind:
            system.subscribe(kind, recorder)

        # 1. Sign up on the free tier
        await system.set_user("user-1", {"tier": "free", "metadata": {"source": "signup"}})
        assert await system.has_feature("user-1", "basic_search")
        assert not await system.has_feature("user-1", "export")

        # 2. Redeem a week of pro
        code = await system.create_gift_code({"tier": "pro", "duration": "7d", "max_uses": 1})
        result = await system.redeem_gift_code("user-1", code)

        assert result.success
        assert await system.has_tier("user-1", "pro")
        assert await system.has_feature("user-1", "api_access")
        assert recorder.kinds == ["upgraded", "code_redeemed"]

        # 3. Same code again fails without side effects
        again = await system.redeem_gift_code("user-2", code)
        assert again.error == "Gift code has reached maximum uses"
        assert await system.get_user("user-2") is None

        # 4. Lapse the subscription and sweep
        user = await system.get_user("user-1")
        await system.set_user("user-1", {
            "tier": user.tier,
            "expires_at": datetime.now(timezone.utc) - timedelta(seconds=1),
            "metadata": user.metadata,
        })
        report = await system.check_expirations()

        assert (report.checked, report.demoted, report.failed) == (1, 1, 0)
        demoted = await system.get_user("user-1")
        assert demoted.tier == "free"
        assert demoted.expires_at is None
        assert demoted.metadata["previousTier"] == "pro"
        assert demoted.metadata["giftCode"] == code
        assert demoted.metadata["source"] == "signup"
        assert recorder.kinds[-2:] == ["expired", "downgraded"]

        # 5. Lists reflect the writes
        assert [u.id for u in await system.get_users_by_tier("free")] == ["user-1"]
        assert await system.get_expired_users() == []
        assert system.expiry_sweeper.running is True

    @pytest.mark.asyncio
    async def test_multi_use_code_across_users(self, system):
        code = await system.create_gift_code({"tier": "plus", "max_uses": 3})

        results = [await system.redeem_gift_code(f"user-{i}", code) for i in range(4)]

        assert [r.success for r in results] == [True, True, True, False]
        assert (await system.get_gift_code(code)).used_count == 3
        assert len(await system.get_users_by_tier("plus")) == 3
        assert all(r.expires_at is None for r in results[:3])

        await system.disable_gift_code(code)
        assert (await system.redeem_gift_code("user-9", code)).error == "Gift code has been disabled"
        assert [g.code for g in await system.list_gift_codes({"tier": "plus"})] == [code]


class TestExpirySweepScript:
    """Tests for the one-shot sweep CLI."""

    @pytest.mark.asyncio
    async def test_sweep_summary(self, tmp_path):
        path = tmp_path / "premium.yaml"
        path.write_text(yaml.safe_dump(PremiumDataFactory.create_config_dict(), sort_keys=False))

        summary = await sweep(path, driver="memory", dsn=None)

        assert summary == {"checked": 0, "demoted": 0, "failed": 0}
        assert json.loads(json.dumps(summary)) == summary
