# infrastructure/external/emailjs_client.py

import httpx
import logging
from typing import Any, Dict, Optional

from app.settings import EmailConfig, settings
from core.exceptions import NotificationError

logger = logging.getLogger(__name__)


class EmailJsClient:
    """One-shot notification mail through the EmailJS REST API"""

    def __init__(self, config: Optional[EmailConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or settings.email
        self.client_config: Dict[str, Any] = {
            "timeout": httpx.Timeout(self.config.email_timeout),
            "headers": {"Content-Type": "application/json"},
        }
        if transport is not None:
            self.client_config["transport"] = transport

    async def send(self, template_params: Dict[str, Any]) -> bool:
        """Send a templated mail; raises NotificationError on failure"""
        if not self.config.is_configured:
            raise NotificationError("EmailJS service/template/public key not configured")

        payload = {
            "service_id": self.config.emailjs_service_id,
            "template_id": self.config.emailjs_template_id,
            "user_id": self.config.emailjs_public_key,
            "template_params": template_params,
        }

        try:
            async with httpx.AsyncClient(**self.client_config) as client:
                response = await client.post(self.config.emailjs_api_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"💥 Error sending email: {e}")
            raise NotificationError(f"Email send failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"❌ EmailJS returned {response.status_code}: {response.text}")
            raise NotificationError(f"EmailJS returned {response.status_code}: {response.text}")

        logger.info(f"📧 Email sent to {template_params.get('email')}")
        return True
