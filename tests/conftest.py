"""Shared test fixtures: an in-memory backend, a fresh bus and generated images."""

import asyncio
import io
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest
from PIL import Image

from core.exceptions import TransportError
from core.models import Detection, ImageFile, ImageRecord, RiskAssessment, estimate_avg_confidence
from infrastructure.messaging.event_bus import RecordEventBus


def make_png(width: int = 64, height: int = 48, color=(200, 30, 30)) -> bytes:
    """Encode a solid-color PNG."""
    buffer = io.BytesIO()
    Image.new('RGB', (width, height), color).save(buffer, format='PNG')
    return buffer.getvalue()


def make_image(filename: str = "site.png", width: int = 64, height: int = 48) -> ImageFile:
    return ImageFile(
        filename=filename,
        content=make_png(width, height),
        mime_type='image/png',
        width=width,
        height=height,
    )


def make_record(record_id: Optional[str], *labels_confidences, created_at: Optional[datetime] = None,
                filename: str = "photo.jpg", avg_confidence: Optional[float] = None,
                mime_type: str = "image/jpeg") -> ImageRecord:
    """Helper to create an ImageRecord from (label, confidence) pairs."""
    detections = tuple(Detection(label=label, confidence=conf) for label, conf in labels_confidences)
    return ImageRecord(
        id=record_id,
        filename=filename,
        original_name=filename,
        mime_type=mime_type,
        size_bytes=1024,
        url=f"/uploads/{filename}" if record_id else "",
        created_at=created_at or datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc),
        detections=detections,
        avg_confidence=avg_confidence,
    )


class FakeTransport:
    """In-memory stand-in for TransportClient with switchable failures."""

    def __init__(self):
        self.stored: Dict[str, ImageRecord] = {}
        self.raw_results: List[Dict[str, Any]] = []
        self.failures: Dict[str, Exception] = {}
        self.calls: List[str] = []

        self.provisional_upload = False
        self.dashboard = None
        self.settings_payload: Dict[str, Any] = {}
        self.saved_settings: List[Dict[str, Any]] = []
        self.risk_result: Dict[str, Any] = {'category': 'low', 'score': 12, 'explanation': 'All equipment present'}

        # Hooks for interleaving tests
        self.on_list: Optional[Callable[[], None]] = None
        self.persist_gate: Optional[asyncio.Event] = None
        self.persisting_now = 0
        self.max_parallel_persists = 0

        self._next_id = 1
        self._clock = 0

    def add(self, record: ImageRecord) -> ImageRecord:
        self.stored[record.id] = record
        return record

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]

    async def upload(self, image: ImageFile, detections=None) -> ImageRecord:
        self._call('upload')
        record_id = None if self.provisional_upload else f"img{self._next_id}"
        self._next_id += 1
        self._clock += 1
        record = ImageRecord(
            id=record_id,
            filename=f"{self._clock}-{image.filename}",
            original_name=image.filename,
            mime_type=image.mime_type,
            size_bytes=image.size_bytes,
            url=f"/uploads/{image.filename}" if record_id else "",
            created_at=datetime(2025, 3, 1, 12, self._clock, tzinfo=timezone.utc),
            detections=tuple(detections or ()),
        )
        if record_id is not None:
            self.stored[record_id] = record
        return record

    async def get_record(self, record_id: str) -> ImageRecord:
        self._call('get_record')
        if record_id not in self.stored:
            raise TransportError(f"GET /api/images/{record_id} failed with status 404", status_code=404)
        return self.stored[record_id]

    async def infer(self, image: ImageFile) -> List[Dict[str, Any]]:
        self._call('infer')
        return list(self.raw_results)

    async def persist_detections(self, record_id: str, detections) -> ImageRecord:
        self._call('persist')
        self.persisting_now += 1
        self.max_parallel_persists = max(self.max_parallel_persists, self.persisting_now)
        try:
            if self.persist_gate is not None:
                await self.persist_gate.wait()
            record = replace(
                self.stored[record_id],
                detections=tuple(detections),
                avg_confidence=estimate_avg_confidence(detections) if detections else None,
            )
            self.stored[record_id] = record
            return record
        finally:
            self.persisting_now -= 1

    async def list_records(self) -> List[ImageRecord]:
        self._call('list')
        if self.on_list is not None:
            self.on_list()
        return sorted(self.stored.values(), key=lambda r: r.created_at, reverse=True)

    async def get_dashboard(self):
        self._call('dashboard')
        return self.dashboard

    async def get_settings(self) -> Dict[str, Any]:
        self._call('get_settings')
        return dict(self.settings_payload)

    async def save_settings(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._call('save_settings')
        self.saved_settings.append(payload)
        return payload

    async def evaluate_risk(self, image_id: str) -> RiskAssessment:
        self._call('risk')
        return RiskAssessment.from_dict(image_id, self.risk_result)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def bus() -> RecordEventBus:
    return RecordEventBus()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def image() -> ImageFile:
    return make_image()
