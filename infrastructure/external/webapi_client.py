# infrastructure/external/webapi_client.py

import httpx
import json
import logging
from typing import Dict, List, Any, Optional, Sequence
from datetime import datetime, timezone

from app.settings import settings
from core.exceptions import TransportError, TransportUnavailableError
from core.models import DashboardSnapshot, Detection, ImageFile, ImageRecord
from shared.decorators.retry import retry
from shared.utils.validation import ValidationError, validate_list_response, validate_response

logger = logging.getLogger(__name__)


# Read-only calls only; upload/persist are never retried
read_retry = retry(
    max_attempts=settings.read_retry_attempts,
    delay=settings.read_retry_delay,
    exceptions=[TransportUnavailableError],
)


class WebApiClient:
    """Async client for the persistence backend (images, dashboard, settings, risk)"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.webapi_base_url).rstrip('/')
        self.timeout = timeout or settings.webapi_timeout

        # HTTP client config
        self.client_config: Dict[str, Any] = {
            "timeout": httpx.Timeout(self.timeout),
            "headers": {
                "Accept": "application/json",
                "User-Agent": f"{settings.app_name}/{settings.app_version}",
            },
        }
        if transport is not None:
            self.client_config["transport"] = transport

        # Stats
        self.request_count = 0
        self.success_count = 0
        self.error_count = 0
        self.last_request_time: Optional[datetime] = None

    # -----------------------------
    # Core request
    # -----------------------------
    async def _request(self, method: str, path: str, **kwargs) -> Any:
        endpoint = f"{self.base_url}{path}"

        self.request_count += 1
        self.last_request_time = datetime.now(timezone.utc)

        try:
            async with httpx.AsyncClient(**self.client_config) as client:
                response = await client.request(method, endpoint, **kwargs)

        except httpx.TimeoutException as e:
            self.error_count += 1
            logger.error(f"⏰ Timeout calling {method} {endpoint}")
            raise TransportUnavailableError(f"Timeout calling {endpoint}", endpoint=endpoint) from e

        except httpx.HTTPError as e:
            self.error_count += 1
            logger.error(f"🔌 Connection error to WebAPI: {method} {endpoint} - {e}")
            raise TransportUnavailableError(f"Connection error: {e}", endpoint=endpoint) from e

        if not response.is_success:
            self.error_count += 1
            logger.warning(f"⚠️ WebAPI returned {response.status_code} for {method} {endpoint}: {response.text}")
            error_cls = TransportUnavailableError if response.status_code >= 500 else TransportError
            raise error_cls(
                f"{method} {path} failed with status {response.status_code}",
                status_code=response.status_code,
                response_text=response.text,
                endpoint=endpoint,
            )

        self.success_count += 1

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            self.error_count += 1
            raise TransportError(
                f"Invalid JSON from {path}",
                status_code=response.status_code,
                response_text=response.text,
                endpoint=endpoint,
            ) from e

    def _parse_record(self, data: Any, path: str) -> ImageRecord:
        try:
            validate_response(data)
        except ValidationError as e:
            raise TransportError(f"Malformed record from {path}: {e}", endpoint=f"{self.base_url}{path}") from e
        return ImageRecord.from_dict(data)

    # -----------------------------
    # Images
    # -----------------------------
    async def upload(self, image: ImageFile, detections: Optional[Sequence[Detection]] = None) -> ImageRecord:
        """POST /api/upload (multipart); returns the stored record"""
        files = {"file": image.as_multipart()}
        data = {}
        if detections is not None:
            data["detections"] = json.dumps([d.to_dict() for d in detections])

        payload = await self._request("POST", "/api/upload", files=files, data=data)
        record = self._parse_record(payload, "/api/upload")

        logger.info(f"📤 Uploaded {image.filename} ({image.size_bytes} bytes) - id: {record.id}")
        return record

    @read_retry
    async def get_record(self, record_id: str) -> ImageRecord:
        """GET /api/images/{id}"""
        path = f"/api/images/{record_id}"
        payload = await self._request("GET", path)
        return self._parse_record(payload, path)

    @read_retry
    async def list_records(self) -> List[ImageRecord]:
        """GET /api/images - newest first"""
        payload = await self._request("GET", "/api/images")
        try:
            validate_list_response(payload)
        except ValidationError as e:
            raise TransportError(f"Malformed image list: {e}", endpoint=f"{self.base_url}/api/images") from e

        records = [ImageRecord.from_dict(item) for item in payload if isinstance(item, dict)]
        if len(records) != len(payload):
            logger.warning(f"⚠️ Skipped {len(payload) - len(records)} non-object entries in image list")

        logger.debug(f"📋 Listed {len(records)} records")
        return records

    async def persist_detections(self, record_id: str, detections: Sequence[Detection]) -> ImageRecord:
        """PUT /api/images/{id} - replaces the whole detection list"""
        path = f"/api/images/{record_id}"
        body = {"detections": [d.to_dict() for d in detections]}

        payload = await self._request("PUT", path, json=body)
        record = self._parse_record(payload, path)

        logger.info(f"💾 Persisted {len(detections)} detections for {record_id}")
        return record

    # -----------------------------
    # Dashboard
    # -----------------------------
    @read_retry
    async def get_dashboard(self) -> Optional[DashboardSnapshot]:
        """GET /api/dashboard - all fields optional"""
        payload = await self._request("GET", "/api/dashboard")
        return DashboardSnapshot.from_dict(payload)

    # -----------------------------
    # Settings
    # -----------------------------
    @read_retry
    async def get_settings(self) -> Dict[str, Any]:
        payload = await self._request("GET", "/api/settings")
        return payload if isinstance(payload, dict) else {}

    async def save_settings(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._request("PUT", "/api/settings", json=payload)
        logger.info("⚙️ Settings saved to WebAPI")
        return result if isinstance(result, dict) else {}

    # -----------------------------
    # Risk evaluation
    # -----------------------------
    async def evaluate_risk(self, image_id: str) -> Dict[str, Any]:
        """POST /api/risk/evaluate; returns the inner `result` object"""
        payload = await self._request("POST", "/api/risk/evaluate", json={"imageId": image_id})
        try:
            validate_response(payload, required_keys=["result"])
            validate_response(payload["result"])
        except ValidationError as e:
            raise TransportError(f"Malformed risk evaluation: {e}", endpoint=f"{self.base_url}/api/risk/evaluate") from e
        return payload["result"]

    # -----------------------------
    # Health check
    # -----------------------------
    async def health_check(self) -> bool:
        """Check the backend answers the image list"""
        try:
            await self._request("GET", "/api/images")
            return True
        except TransportError:
            return False

    # -----------------------------
    # Stats
    # -----------------------------
    def get_stats(self) -> Dict[str, Any]:
        success_rate = (
            (self.success_count / self.request_count * 100)
            if self.request_count > 0
            else 0
        )

        return {
            "total_requests": self.request_count,
            "successful_requests": self.success_count,
            "failed_requests": self.error_count,
            "success_rate_percent": round(success_rate, 2),
            "last_request_time": self.last_request_time.isoformat()
            if self.last_request_time
            else None,
            "webapi_url": self.base_url,
        }
