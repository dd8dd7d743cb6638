# services/settings/store.py
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from app.settings import settings as app_settings
from core.exceptions import AcquisitionError, TransportError
from core.models import DetectionSettings
from infrastructure.external.emailjs_client import EmailJsClient
from infrastructure.external.transport import TransportClient, get_transport_client
from infrastructure.storage.settings_cache import LocalSettingsCache
from services.acquisition.image_loader import load_image_file

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = (
    "Dear {name},\n\n"
    "This mail is about your object detection alert settings.\n"
    "Please check your configured settings and uploaded objects.\n"
)


class SettingsStore:
    """
    Operator settings: loaded once from the backend, falling back to the
    local cache and then to defaults. Changed only by an explicit save and
    never broadcast to other views.
    """

    def __init__(
        self,
        transport: Optional[TransportClient] = None,
        cache: Optional[LocalSettingsCache] = None,
    ):
        self.transport = transport or get_transport_client()
        self.cache = cache or LocalSettingsCache(app_settings.settings_cache_path)
        self.current = DetectionSettings()
        self.source = "defaults"

    async def load(self) -> DetectionSettings:
        try:
            payload = await self.transport.get_settings()
        except TransportError as e:
            logger.warning(f"⚠️ Settings backend unavailable, trying local cache: {e}")
            return self._load_cached()

        loaded = self._parse(payload)
        if loaded is None:
            return self._load_cached()

        counts = payload.get('objectCounts')
        if isinstance(counts, dict):
            loaded = loaded.with_object_counts(counts)

        self.current = loaded
        self.source = "backend"
        logger.info(f"⚙️ Settings loaded from backend (threshold {loaded.detection_threshold})")
        return loaded

    def _load_cached(self) -> DetectionSettings:
        cached = self.cache.load()
        loaded = self._parse(cached) if cached is not None else None
        if loaded is None:
            self.current = DetectionSettings()
            self.source = "defaults"
            logger.info("⚙️ No usable settings found, using defaults")
        else:
            self.current = loaded
            self.source = "cache"
            logger.info(f"⚙️ Settings loaded from local cache {self.cache.path}")
        return self.current

    @staticmethod
    def _parse(payload: Any) -> Optional[DetectionSettings]:
        if not isinstance(payload, dict):
            return None
        try:
            return DetectionSettings.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"⚠️ Discarding invalid settings payload: {e.error_count()} errors")
            return None

    async def save(self, new_settings: Optional[DetectionSettings] = None) -> bool:
        """Persist remotely and locally; returns whether the backend accepted it"""
        if new_settings is not None:
            self.current = new_settings
        payload = self.current.to_payload()

        # Local copy is written regardless of the backend outcome
        self.cache.save(payload)

        try:
            await self.transport.save_settings(payload)
        except TransportError as e:
            logger.error(f"❌ Settings saved locally only: {e}")
            return False

        logger.info("💾 Settings saved")
        return True

    def reset_defaults(self) -> DetectionSettings:
        """Back to defaults in memory; call save() to persist"""
        self.current = DetectionSettings()
        self.source = "defaults"
        return self.current


class SettingsNotifier:
    """Sends the settings alert mail, optionally with an uploaded attachment link"""

    def __init__(
        self,
        transport: Optional[TransportClient] = None,
        email_client: Optional[EmailJsClient] = None,
    ):
        self.transport = transport or get_transport_client()
        self.email_client = email_client or EmailJsClient()

    async def send(
        self,
        name: str,
        email: str,
        message: str = "",
        attachment: Optional[Union[str, Path]] = None,
    ) -> bool:
        if not name.strip() or not email.strip():
            raise ValueError("Name and email are required")

        attachment_url = "No attachment uploaded."
        if attachment is not None:
            attachment_url = await self._upload_attachment(attachment)

        return await self.email_client.send({
            'name': name,
            'email': email,
            'message': message or DEFAULT_MESSAGE.format(name=name),
            'attachment': attachment_url,
        })

    async def _upload_attachment(self, path: Union[str, Path]) -> str:
        image = load_image_file(path)
        limit_mb = self.email_client.config.max_attachment_mb
        if image.size_bytes > limit_mb * 1024 * 1024:
            raise AcquisitionError(f"File too large (max {limit_mb} MB allowed)", filename=image.filename)

        record = await self.transport.upload(image)
        return record.url
