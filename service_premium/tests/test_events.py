"""
Unit tests for the event bus.
"""

import pytest

from service_premium.app.events import (
    EventBus,
    EventKind,
    GiftCodeRedeemed,
    SubscriptionExpired,
    TierUpgraded,
)
from shared.test_helpers import EventRecorder


class TestEventBus:
    """Test cases for EventBus."""

    @pytest.fixture
    def bus(self):
        return EventBus()

    def test_emit_delivers_to_kind_listeners_only(self, bus):
        upgrades = EventRecorder()
        expirations = EventRecorder()
        bus.subscribe(EventKind.UPGRADED, upgrades)
        bus.subscribe(EventKind.EXPIRED, expirations)

        delivered = bus.emit(TierUpgraded(user_id="u1", old_tier="free", new_tier="pro"))

        assert delivered == 1
        assert upgrades.events == [TierUpgraded(user_id="u1", old_tier="free", new_tier="pro")]
        assert expirations.events == []

    def test_listeners_called_in_registration_order(self, bus):
        calls = []
        bus.subscribe(EventKind.EXPIRED, lambda event: calls.append("first"))
        bus.subscribe(EventKind.EXPIRED, lambda event: calls.append("second"))

        bus.emit(SubscriptionExpired(user_id="u1", tier="pro"))

        assert calls == ["first", "second"]

    def test_failing_listener_does_not_block_others(self, bus):
        recorder = EventRecorder()

        def broken(event):
            raise RuntimeError("listener failed")

        bus.subscribe(EventKind.CODE_REDEEMED, broken)
        bus.subscribe(EventKind.CODE_REDEEMED, recorder)

        delivered = bus.emit(GiftCodeRedeemed(user_id="u1", code="GIFT-AAAA-BBBB", tier="pro", expires_at=None))

        assert delivered == 1
        assert recorder.kinds == ["code_redeemed"]

    def test_unsubscribe(self, bus):
        recorder = EventRecorder()
        bus.subscribe("upgraded", recorder)

        assert bus.unsubscribe(EventKind.UPGRADED, recorder) is True
        assert bus.unsubscribe(EventKind.UPGRADED, recorder) is False

        bus.emit(TierUpgraded(user_id="u1", old_tier="free", new_tier="pro"))
        assert recorder.events == []

    def test_unknown_kind_rejected(self, bus):
        with pytest.raises(ValueError):
            bus.subscribe("renamed", EventRecorder())

    def test_listeners_returns_copy(self, bus):
        recorder = EventRecorder()
        bus.subscribe(EventKind.DOWNGRADED, recorder)

        listeners = bus.listeners(EventKind.DOWNGRADED)
        listeners.clear()

        assert bus.listeners(EventKind.DOWNGRADED) == [recorder]
