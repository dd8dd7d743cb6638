# infrastructure/messaging/event_bus.py
"""
In-process publish/subscribe channel for record change events.

Delivery is synchronous and in publish order to the subscribers registered
when the publish starts. There is no replay: a late subscriber only sees
later events and must reconcile through ``list_records()``.
"""
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, Optional

from core.enums import RecordEventType
from core.models import ImageRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordEvent:
    """`created` or `updated` fact carrying one record snapshot"""
    kind: RecordEventType
    record: ImageRecord
    source: str = "unknown"
    published_at: float = field(default_factory=time.time)


RecordHandler = Callable[[RecordEvent], None]


class Subscription:
    """Handle returned by subscribe(); cancel() is idempotent"""

    def __init__(self, bus: 'RecordEventBus', token: int, name: str):
        self._bus = bus
        self.token = token
        self.name = name

    @property
    def active(self) -> bool:
        return self._bus.is_subscribed(self.token)

    def cancel(self) -> None:
        self._bus.unsubscribe(self.token)


@dataclass
class _Subscriber:
    handler: RecordHandler
    kinds: FrozenSet[RecordEventType]
    name: str


class RecordEventBus:
    """Single-threaded fan-out of record events"""

    def __init__(self):
        self._subscribers: Dict[int, _Subscriber] = {}
        self._tokens = itertools.count(1)

        # Stats
        self.published_count = 0
        self.delivered_count = 0
        self.handler_errors = 0

    def subscribe(
        self,
        handler: RecordHandler,
        kinds: Optional[Iterable[RecordEventType]] = None,
        name: Optional[str] = None,
    ) -> Subscription:
        token = next(self._tokens)
        name = name or getattr(handler, '__qualname__', repr(handler))
        self._subscribers[token] = _Subscriber(
            handler=handler,
            kinds=frozenset(kinds) if kinds else frozenset(RecordEventType),
            name=name,
        )
        logger.debug(f"📥 Subscribed {name} (token {token})")
        return Subscription(self, token, name)

    def unsubscribe(self, token: int) -> None:
        """Remove a subscriber; unknown tokens are ignored"""
        subscriber = self._subscribers.pop(token, None)
        if subscriber is not None:
            logger.debug(f"📤 Unsubscribed {subscriber.name} (token {token})")

    def is_subscribed(self, token: int) -> bool:
        return token in self._subscribers

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: RecordEvent) -> int:
        """Deliver to every current subscriber; returns the number of deliveries"""
        self.published_count += 1
        delivered = 0

        # Snapshot so subscribe/unsubscribe inside a handler cannot disturb this delivery
        targets = list(self._subscribers.items())
        for token, subscriber in targets:
            # Cancelled earlier in this same delivery
            if token not in self._subscribers:
                continue
            if event.kind not in subscriber.kinds:
                continue
            try:
                subscriber.handler(event)
                delivered += 1
            except Exception as e:
                self.handler_errors += 1
                logger.error(f"❌ Subscriber {subscriber.name} failed on {event.kind.value}: {e}", exc_info=True)

        self.delivered_count += delivered
        logger.debug(f"📨 {event.kind.value} {event.record.id or '<provisional>'} delivered to {delivered} subscribers")
        return delivered

    def publish_created(self, record: ImageRecord, source: str = "unknown") -> int:
        return self.publish(RecordEvent(kind=RecordEventType.CREATED, record=record, source=source))

    def publish_updated(self, record: ImageRecord, source: str = "unknown") -> int:
        return self.publish(RecordEvent(kind=RecordEventType.UPDATED, record=record, source=source))

    def clear(self) -> None:
        """Drop all subscribers (process teardown)"""
        self._subscribers.clear()


# Global bus instance, lives for the whole process
record_bus = RecordEventBus()

def get_record_bus() -> RecordEventBus:
    return record_bus
