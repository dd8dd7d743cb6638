# ================================
# infrastructure/external/transport.py
# ================================
import logging
from typing import Any, Dict, List, Optional, Sequence

from core.exceptions import EvaluationError, TransportError
from core.models import DashboardSnapshot, Detection, ImageFile, ImageRecord, RawDetection, RiskAssessment
from .inference_client import InferenceClient
from .webapi_client import WebApiClient

logger = logging.getLogger(__name__)


class TransportClient:
    """
    Single boundary over the persistence backend and the inference service.

    Every call either returns a parsed value or raises TransportError;
    callers keep their last-known-good state on failure.
    """

    def __init__(
        self,
        webapi: Optional[WebApiClient] = None,
        inference: Optional[InferenceClient] = None,
    ):
        self.webapi = webapi or WebApiClient()
        self.inference = inference or InferenceClient()

    async def upload(self, image: ImageFile, detections: Optional[Sequence[Detection]] = None) -> ImageRecord:
        return await self.webapi.upload(image, detections=detections)

    async def infer(self, image: ImageFile) -> List[RawDetection]:
        return await self.inference.predict(image)

    async def persist_detections(self, record_id: str, detections: Sequence[Detection]) -> ImageRecord:
        return await self.webapi.persist_detections(record_id, detections)

    async def list_records(self) -> List[ImageRecord]:
        return await self.webapi.list_records()

    async def get_record(self, record_id: str) -> ImageRecord:
        return await self.webapi.get_record(record_id)

    async def get_dashboard(self) -> Optional[DashboardSnapshot]:
        return await self.webapi.get_dashboard()

    async def get_settings(self) -> Dict[str, Any]:
        return await self.webapi.get_settings()

    async def save_settings(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.webapi.save_settings(payload)

    async def evaluate_risk(self, image_id: str) -> RiskAssessment:
        """POST /api/risk/evaluate; failures surface as EvaluationError"""
        try:
            result = await self.webapi.evaluate_risk(image_id)
        except TransportError as e:
            logger.error(f"❌ Risk evaluation failed for {image_id}: {e}")
            raise EvaluationError(f"Risk evaluation failed for {image_id}: {e}") from e

        assessment = RiskAssessment.from_dict(image_id, result)
        logger.info(f"🛡️ Risk for {image_id}: {assessment.category.value} ({assessment.score})")
        return assessment

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.webapi.get_stats(),
            "inference_requests": self.inference.request_count,
            "inference_errors": self.inference.error_count,
            "inference_last_latency_ms": self.inference.last_latency_ms,
        }


# ================================
# Global transport instance
# ================================
_transport_client: Optional[TransportClient] = None

def get_transport_client() -> TransportClient:
    """Get the process-wide transport client, created on first use"""
    global _transport_client
    if _transport_client is None:
        _transport_client = TransportClient()
    return _transport_client
