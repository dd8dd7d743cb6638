# services/views/record_cache.py
import asyncio
import logging
from typing import List, Optional, Tuple

from core.enums import RecordEventType
from core.exceptions import TransportError
from core.models import ImageRecord
from infrastructure.external.transport import TransportClient, get_transport_client
from infrastructure.messaging.event_bus import RecordEvent, RecordEventBus, Subscription, get_record_bus
from shared.decorators.error_handling import handle_errors

logger = logging.getLogger(__name__)


class RecordViewCache:
    """
    Private, ordered projection of the record set for one view.

    Seeded by one list_records() call on mount and kept current by bus
    events. Reconciliation is last-write-wins per id, so applying the same
    event twice leaves the same state as applying it once.
    """

    name = "records"

    def __init__(
        self,
        transport: Optional[TransportClient] = None,
        bus: Optional[RecordEventBus] = None,
    ):
        self.transport = transport or get_transport_client()
        self.bus = bus or get_record_bus()

        self._records: List[ImageRecord] = []
        self._subscription: Optional[Subscription] = None
        self._seeding = False
        self._pending: List[RecordEvent] = []
        self._refresh_lock = asyncio.Lock()

        self.mounted = False
        self.stale = True  # no successful seed yet

    # -----------------------------
    # Lifecycle
    # -----------------------------
    async def mount(self) -> bool:
        """Subscribe, then seed from the backend; returns whether the seed succeeded"""
        if self.mounted:
            logger.warning(f"⚠️ {self.name} view already mounted")
            return not self.stale

        # Subscribe first so nothing published during the seed is missed
        self._subscription = self.bus.subscribe(self._on_event, name=f"{self.name}-view")
        self.mounted = True
        logger.info(f"🔗 {self.name} view mounted")
        return await self.refresh()

    def unmount(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self.mounted = False
        self._pending.clear()
        logger.info(f"🔌 {self.name} view unmounted")

    async def __aenter__(self) -> 'RecordViewCache':
        await self.mount()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.unmount()

    async def refresh(self) -> bool:
        """Authoritative re-seed; on failure the current snapshot is kept"""
        # Overlapping refreshes would share one pending buffer
        async with self._refresh_lock:
            return await self._seed()

    async def _seed(self) -> bool:
        self._seeding = True
        self._pending = []
        try:
            loaded = await self._fetch_records()
        finally:
            self._seeding = False
            pending, self._pending = self._pending, []

        if loaded is None:
            # Buffered events were already applied to the current snapshot
            return False

        self._records = [r for r in loaded if self.accepts(r)]
        self.stale = False

        # Events that raced the fetch are replayed on top of the fresh list
        for event in pending:
            self._apply(event)

        self.on_seeded()
        logger.debug(f"📋 {self.name} view seeded with {len(self._records)} records")
        return True

    @handle_errors(default_return=None, handled_exceptions=[TransportError])
    async def _fetch_records(self) -> Optional[List[ImageRecord]]:
        return await self.transport.list_records()

    # -----------------------------
    # Reconciliation
    # -----------------------------
    def _on_event(self, event: RecordEvent) -> None:
        if not self.mounted:
            return
        self._apply(event)
        if self._seeding:
            self._pending.append(event)

    def _apply(self, event: RecordEvent) -> None:
        record = event.record
        if not self.accepts(record):
            return

        if event.kind == RecordEventType.CREATED:
            self._apply_created(record)
        else:
            self._apply_updated(record)

        self.on_change(event)

    def _apply_created(self, record: ImageRecord) -> None:
        # A known id already holds the same or a newer snapshot
        if self._index_of(record.id) is None:
            self._records.insert(0, record)

    def _apply_updated(self, record: ImageRecord) -> None:
        index = self._index_of(record.id)
        if index is None:
            # An update for an unseen id is kept rather than dropped
            self._records.append(record)
        else:
            self._records[index] = record

    def _index_of(self, record_id: Optional[str]) -> Optional[int]:
        if record_id is None:
            return None
        for index, record in enumerate(self._records):
            if record.id == record_id:
                return index
        return None

    # -----------------------------
    # Hooks
    # -----------------------------
    def accepts(self, record: ImageRecord) -> bool:
        return True

    def on_change(self, event: RecordEvent) -> None:
        pass

    def on_seeded(self) -> None:
        pass

    # -----------------------------
    # Access
    # -----------------------------
    def snapshot(self) -> Tuple[ImageRecord, ...]:
        """Immutable point-in-time copy"""
        return tuple(self._records)

    def get(self, record_id: str) -> Optional[ImageRecord]:
        index = self._index_of(record_id)
        return self._records[index] if index is not None else None

    def __len__(self) -> int:
        return len(self._records)
