"""SendGrid v3 mail transport (API-key provider)."""
from __future__ import annotations

import base64
import logging
from typing import Any, Dict

import httpx

from quote_delivery.models import RenderedNotification
from quote_delivery.transport.base import Sender, TransportError, classify_http_status

logger = logging.getLogger(__name__)


class SendGridTransport:
    """Sends mail through SendGrid ``POST /mail/send``."""

    def __init__(
        self,
        api_key: str,
        sender: Sender,
        client: httpx.AsyncClient,
        api_base: str = "https://api.sendgrid.com/v3",
    ) -> None:
        self._api_key = api_key
        self.sender = sender
        self.api_base = api_base.rstrip("/")
        self._client = client

    @property
    def name(self) -> str:
        return "sendgrid"

    def _build_payload(self, notification: RenderedNotification, recipient: str) -> Dict[str, Any]:
        personalization: Dict[str, Any] = {"to": [{"email": recipient}]}
        # SendGrid rejects a CC that repeats the To address.
        cc = [address for address in notification.cc if address.lower() != recipient.lower()]
        if cc:
            personalization["cc"] = [{"email": address} for address in cc]

        payload: Dict[str, Any] = {
            "personalizations": [personalization],
            "from": {"email": self.sender.email, "name": self.sender.name},
            "subject": notification.subject,
            "content": [
                {"type": "text/plain", "value": notification.text},
                {"type": "text/html", "value": notification.html},
            ],
        }
        if notification.attachments:
            payload["attachments"] = [
                {
                    "content": base64.b64encode(attachment.content).decode("ascii"),
                    "filename": attachment.filename,
                    "type": attachment.mime_type,
                    "disposition": "attachment",
                }
                for attachment in notification.attachments
            ]
        return payload

    async def send(self, notification: RenderedNotification, recipient: str) -> None:
        try:
            response = await self._client.post(
                f"{self.api_base}/mail/send",
                json=self._build_payload(notification, recipient),
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.TimeoutException as e:
            raise TransportError.transient(f"SendGrid request timed out: {e}", provider=self.name) from e
        except httpx.HTTPError as e:
            raise TransportError.transient(f"SendGrid request failed: {e}", provider=self.name) from e

        if response.is_success:
            message_id = response.headers.get("X-Message-Id", "")
            logger.info(f"SendGrid accepted message, message_id={message_id}")
            return

        raise TransportError(
            classify_http_status(response.status_code),
            f"SendGrid returned {response.status_code}: {response.text[:200]}",
            provider=self.name,
            status_code=response.status_code,
        )
