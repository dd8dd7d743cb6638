# infrastructure/external/inference_client.py

import httpx
import logging
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from app.settings import settings
from core.exceptions import TransportError, TransportUnavailableError
from core.models import ImageFile, RawDetection

logger = logging.getLogger(__name__)


class InferenceClient:
    """Client for the object-detection service (POST /predict)"""

    def __init__(
        self,
        predict_url: Optional[str] = None,
        timeout: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.predict_url = predict_url or settings.predict_url
        self.timeout = timeout or settings.inference_timeout

        self.client_config: Dict[str, Any] = {
            "timeout": httpx.Timeout(self.timeout),
            "headers": {"User-Agent": f"{settings.app_name}/{settings.app_version}"},
        }
        if transport is not None:
            self.client_config["transport"] = transport

        # Stats
        self.request_count = 0
        self.error_count = 0
        self.last_latency_ms: Optional[float] = None

    async def predict(self, image: ImageFile) -> List[RawDetection]:
        """Run the model on one image; returns raw, un-normalized entries"""
        self.request_count += 1
        started = datetime.now(timezone.utc)

        try:
            async with httpx.AsyncClient(**self.client_config) as client:
                response = await client.post(self.predict_url, files={"file": image.as_multipart()})

        except httpx.TimeoutException as e:
            self.error_count += 1
            logger.error(f"⏰ Inference timeout for {image.filename}")
            raise TransportUnavailableError("Inference timeout", endpoint=self.predict_url) from e

        except httpx.HTTPError as e:
            self.error_count += 1
            logger.error(f"🔌 Cannot reach inference service {self.predict_url}: {e}")
            raise TransportUnavailableError(f"Inference connection error: {e}", endpoint=self.predict_url) from e

        self.last_latency_ms = (datetime.now(timezone.utc) - started).total_seconds() * 1000

        if not response.is_success:
            self.error_count += 1
            logger.warning(f"⚠️ Inference returned {response.status_code}: {response.text}")
            raise TransportError(
                f"Detection failed with status {response.status_code}",
                status_code=response.status_code,
                response_text=response.text,
                endpoint=self.predict_url,
            )

        try:
            payload = response.json()
        except ValueError as e:
            self.error_count += 1
            raise TransportError("Invalid JSON from inference service", response_text=response.text,
                                 endpoint=self.predict_url) from e

        # Some deployments wrap the list as {"detections": [...]}
        if isinstance(payload, dict) and isinstance(payload.get("detections"), list):
            payload = payload["detections"]

        if not isinstance(payload, list):
            self.error_count += 1
            raise TransportError(
                f"Inference response is not a list: {type(payload).__name__}",
                endpoint=self.predict_url,
            )

        logger.debug(f"🤖 Inference on {image.filename}: {len(payload)} raw results in {self.last_latency_ms:.1f} ms")
        return payload
