# services/detection/orchestrator.py
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from app.settings import settings
from core.enums import SubmissionState
from core.exceptions import AcquisitionError, SafetyDetectionException, TransportError
from core.models import Detection, ImageFile, ImageRecord, estimate_avg_confidence, normalize_detections
from infrastructure.external.transport import TransportClient, get_transport_client
from infrastructure.messaging.event_bus import RecordEventBus, get_record_bus
from services.acquisition.image_loader import load_image_file
from shared.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    SubmissionState.IDLE: {SubmissionState.UPLOADING, SubmissionState.ERROR},
    SubmissionState.UPLOADING: {SubmissionState.UPLOADED, SubmissionState.ERROR},
    SubmissionState.UPLOADED: {SubmissionState.DETECTING, SubmissionState.ERROR},
    SubmissionState.DETECTING: {SubmissionState.DETECTED, SubmissionState.ERROR},
    SubmissionState.DETECTED: {SubmissionState.PERSISTING, SubmissionState.ERROR},
    SubmissionState.PERSISTING: {SubmissionState.DONE, SubmissionState.ERROR},
    # A new detection run on an already uploaded record
    SubmissionState.DONE: {SubmissionState.DETECTING},
    SubmissionState.ERROR: {SubmissionState.DETECTING},
}


@dataclass
class Submission:
    """One image travelling through upload -> detect -> persist"""
    image: ImageFile
    source: str = "upload"
    state: SubmissionState = SubmissionState.IDLE
    record: Optional[ImageRecord] = None  # last known good
    detections: List[Detection] = field(default_factory=list)  # latest normalized run
    error: Optional[Exception] = None
    history: List[SubmissionState] = field(default_factory=lambda: [SubmissionState.IDLE])
    preview_ref: str = ""  # stored url, or a local-only reference that is never broadcast
    detecting: bool = False

    @property
    def record_id(self) -> Optional[str]:
        return self.record.id if self.record else None

    @property
    def is_confirmed(self) -> bool:
        """Detections confirmed by the persistence layer"""
        return self.state == SubmissionState.DONE

    @property
    def display_avg_confidence(self) -> float:
        """Server value once confirmed, client estimate before"""
        if self.is_confirmed and self.record and self.record.avg_confidence is not None:
            return self.record.avg_confidence
        return estimate_avg_confidence(self.detections)

    def transition(self, state: SubmissionState) -> None:
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid submission transition {self.state.value} -> {state.value}")
        logger.debug(f"🔀 {self.image.filename}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


ErrorReporter = Callable[[Submission, Exception], None]


class DetectionOrchestrator:
    """Drives submissions through upload, inference, normalization and persistence"""

    def __init__(
        self,
        transport: Optional[TransportClient] = None,
        bus: Optional[RecordEventBus] = None,
        source: str = "upload",
        detector_name: Optional[str] = None,
        error_reporter: Optional[ErrorReporter] = None,
    ):
        self.transport = transport or get_transport_client()
        self.bus = bus or get_record_bus()
        self.source = source
        self.detector_name = detector_name or settings.detector_name
        self.error_reporter = error_reporter

        # At most one persist in flight per record id
        self._persist_locks: Dict[str, asyncio.Lock] = {}
        self._persist_users: Dict[str, int] = {}

        # Stats
        self.submitted_count = 0
        self.completed_count = 0
        self.failed_count = 0

    # -----------------------------
    # Entry points
    # -----------------------------
    async def submit(self, image: ImageFile) -> Submission:
        """Upload, then detect automatically; never raises TransportError"""
        self.submitted_count += 1
        submission = Submission(image=image, source=self.source)

        if await self._upload(submission):
            await self.detect(submission)

        return submission

    async def submit_path(self, path: Union[str, Path]) -> Submission:
        """Acquire an image from disk and submit it"""
        try:
            image = load_image_file(path)
        except AcquisitionError as e:
            self.submitted_count += 1
            placeholder = ImageFile(filename=Path(path).name, content=b"", mime_type="", local_path=Path(path))
            submission = Submission(image=placeholder, source=self.source)
            self._fail(submission, e)
            return submission

        return await self.submit(image)

    async def detect(self, submission: Submission) -> Submission:
        """Run (or re-run) inference for an uploaded submission and persist the result"""
        if submission.detecting:
            logger.info(f"⏳ Inference already in flight for {submission.image.filename}, skipping")
            return submission

        if submission.record is None:
            logger.warning(f"⚠️ {submission.image.filename} was never uploaded; nothing to detect")
            return submission

        submission.detecting = True
        try:
            submission.transition(SubmissionState.DETECTING)
            try:
                raw_results = await self.transport.infer(submission.image)
            except TransportError as e:
                self._fail(submission, e)
                return submission

            submission.detections = normalize_detections(
                raw_results,
                detected_at=utcnow(),
                source=self.detector_name,
            )
            submission.transition(SubmissionState.DETECTED)
            logger.info(
                f"🔍 {submission.image.filename}: {len(submission.detections)} detections "
                f"(est. avg {submission.display_avg_confidence:.2f})"
            )

            if submission.record.is_provisional:
                self._fail(submission, TransportError("Upload response carried no id; detections not persisted"))
                return submission

            await self._persist(submission, list(submission.detections))
        finally:
            submission.detecting = False

        return submission

    # -----------------------------
    # Steps
    # -----------------------------
    async def _upload(self, submission: Submission) -> bool:
        image = submission.image
        submission.transition(SubmissionState.UPLOADING)

        try:
            record = await self.transport.upload(image)
        except TransportError as e:
            submission.preview_ref = self._local_ref(image)
            self._fail(submission, e)
            return False

        record = await self._fetch_fresh(record)
        submission.record = record
        submission.preview_ref = record.url or self._local_ref(image)
        submission.transition(SubmissionState.UPLOADED)

        # Other views show the image before inference completes
        self.bus.publish_created(record, source=self.source)
        return True

    async def _fetch_fresh(self, record: ImageRecord) -> ImageRecord:
        """Re-read the stored document for server-side fields; keep the upload response on failure"""
        if record.is_provisional:
            return record
        try:
            return await self.transport.get_record(record.id)
        except TransportError as e:
            logger.warning(f"⚠️ Could not re-fetch {record.id}, using upload response: {e}")
            return record

    async def _persist(self, submission: Submission, detections: List[Detection]) -> None:
        record_id = submission.record.id
        lock = self._persist_locks.setdefault(record_id, asyncio.Lock())

        self._persist_users[record_id] = self._persist_users.get(record_id, 0) + 1

        if lock.locked():
            logger.info(f"⏳ Waiting for in-flight persist of {record_id}")

        try:
            async with lock:
                submission.transition(SubmissionState.PERSISTING)
                try:
                    updated = await self.transport.persist_detections(record_id, detections)
                except TransportError as e:
                    # Record stays visible with its last successful state
                    self._fail(submission, e)
                    return

                submission.record = updated
                submission.transition(SubmissionState.DONE)
                self.completed_count += 1
                self.bus.publish_updated(updated, source=self.source)
        finally:
            # Drop the lock once nobody holds or waits on it
            self._persist_users[record_id] -= 1
            if not self._persist_users[record_id]:
                del self._persist_users[record_id]
                del self._persist_locks[record_id]

        logger.info(f"✅ {submission.image.filename} done - {updated.detection_count} detections, id {record_id}")

    # -----------------------------
    # Helpers
    # -----------------------------
    def _fail(self, submission: Submission, error: SafetyDetectionException) -> None:
        self.failed_count += 1
        submission.error = error
        logger.error(f"❌ {submission.image.filename} failed while {submission.state.value}: {error}")
        submission.transition(SubmissionState.ERROR)

        if self.error_reporter is not None:
            self.error_reporter(submission, error)

    @staticmethod
    def _local_ref(image: ImageFile) -> str:
        if image.local_path is not None:
            return Path(image.local_path).resolve().as_uri()
        return f"local:{image.filename}"

    def get_stats(self) -> Dict[str, int]:
        return {
            "submitted": self.submitted_count,
            "completed": self.completed_count,
            "failed": self.failed_count,
        }
