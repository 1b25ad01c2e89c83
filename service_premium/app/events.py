"""
Lifecycle notifications for premium users.

Events form a closed set keyed by ``EventKind``. Listeners are registered
per kind and called synchronously, in registration order, each time an
event of that kind is emitted. Delivery is best effort: a failing listener
is logged and does not prevent the remaining listeners from running.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from shared.logging import get_logger


class EventKind(str, Enum):
    """Event kinds."""
    UPGRADED = "upgraded"
    DOWNGRADED = "downgraded"
    EXPIRED = "expired"
    CODE_REDEEMED = "code_redeemed"


@dataclass(frozen=True)
class TierUpgraded:
    user_id: str
    old_tier: str
    new_tier: str
    kind: EventKind = EventKind.UPGRADED


@dataclass(frozen=True)
class TierDowngraded:
    user_id: str
    old_tier: str
    new_tier: str
    kind: EventKind = EventKind.DOWNGRADED


@dataclass(frozen=True)
class SubscriptionExpired:
    user_id: str
    tier: str
    kind: EventKind = EventKind.EXPIRED


@dataclass(frozen=True)
class GiftCodeRedeemed:
    user_id: str
    code: str
    tier: str
    expires_at: Optional[datetime]
    kind: EventKind = EventKind.CODE_REDEEMED


PremiumEvent = Union[TierUpgraded, TierDowngraded, SubscriptionExpired, GiftCodeRedeemed]
EventListener = Callable[[PremiumEvent], None]


class EventBus:
    """Synchronous observer registry for premium events."""

    def __init__(self):
        self.logger = get_logger("premium.events")
        self._listeners: Dict[EventKind, List[EventListener]] = {kind: [] for kind in EventKind}

    def subscribe(self, kind: EventKind, listener: EventListener) -> None:
        """Register ``listener`` for events of ``kind``."""
        self._listeners[EventKind(kind)].append(listener)

    def unsubscribe(self, kind: EventKind, listener: EventListener) -> bool:
        """Remove ``listener``; returns False if it was not registered."""
        listeners = self._listeners[EventKind(kind)]
        if listener in listeners:
            listeners.remove(listener)
            return True
        return False

    def listeners(self, kind: EventKind) -> List[EventListener]:
        return list(self._listeners[EventKind(kind)])

    def emit(self, event: PremiumEvent) -> int:
        """Dispatch ``event``; returns the number of listeners that ran cleanly."""
        delivered = 0
        for listener in list(self._listeners[event.kind]):
            try:
                listener(event)
                delivered += 1
            except Exception as e:
                self.logger.error(
                    "Event listener failed",
                    event_kind=event.kind.value,
                    user_id=event.user_id,
                    error=str(e)
                )
        return delivered
