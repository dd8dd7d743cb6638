# services/detection/live_capture.py
import logging
import time
from dataclasses import replace
from typing import List, Optional

from app.settings import settings
from core.exceptions import AcquisitionError, TransportError
from core.models import Detection, ImageFile, ImageRecord, normalize_detections
from infrastructure.external.transport import TransportClient, get_transport_client
from infrastructure.messaging.event_bus import RecordEventBus, get_record_bus
from shared.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class LiveCaptureSession:
    """
    Camera-side counterpart of the upload orchestrator.

    preview() keeps the latest detections in normalized (0-1) units for
    overlay drawing; save() uploads a captured frame together with those
    detections converted back to pixels and announces the new record.
    """

    def __init__(
        self,
        transport: Optional[TransportClient] = None,
        bus: Optional[RecordEventBus] = None,
        detector_name: Optional[str] = None,
    ):
        self.transport = transport or get_transport_client()
        self.bus = bus or get_record_bus()
        self.detector_name = detector_name or settings.detector_name
        self.source = "live-camera"

        self.detections: List[Detection] = []  # normalized, transient
        self.last_error: Optional[Exception] = None

        # Stats
        self.frames_processed = 0
        self.frames_saved = 0
        self._window_started = time.monotonic()
        self._window_frames = 0
        self.fps = 0.0

    async def preview(self, frame: ImageFile) -> List[Detection]:
        """Run inference on one frame; on failure the previous overlay is kept"""
        if frame.frame_size is None:
            raise AcquisitionError("Frame size is required for live preview", filename=frame.filename)

        try:
            raw_results = await self.transport.infer(frame)
        except TransportError as e:
            self.last_error = e
            logger.warning(f"⚠️ Live detection failed: {e}")
            return self.detections

        self.detections = normalize_detections(
            raw_results,
            frame_size=frame.frame_size,
            detected_at=utcnow(),
            source=self.detector_name,
        )
        self.last_error = None
        self._tick()
        return self.detections

    async def save(self, frame: ImageFile) -> Optional[ImageRecord]:
        """Upload the frame with the current overlay; returns None when the upload fails"""
        if frame.frame_size is None:
            raise AcquisitionError("Frame size is required to store detections", filename=frame.filename)

        width, height = frame.frame_size
        stored = [
            replace(d, bounding_box=d.bounding_box.to_pixels(width, height)) if d.bounding_box else d
            for d in self.detections
        ]

        try:
            record = await self.transport.upload(frame, detections=stored)
        except TransportError as e:
            self.last_error = e
            logger.error(f"❌ Save error for {frame.filename}: {e}")
            return None

        self.frames_saved += 1
        self.bus.publish_created(record, source=self.source)
        logger.info(f"📸 Saved capture {frame.filename} with {len(stored)} detections")
        return record

    def _tick(self) -> None:
        self.frames_processed += 1
        self._window_frames += 1
        now = time.monotonic()
        elapsed = now - self._window_started
        if elapsed >= 1.0:
            self.fps = self._window_frames / elapsed
            self._window_frames = 0
            self._window_started = now
