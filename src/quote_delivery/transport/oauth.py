"""
Microsoft Graph mail transport with a single-flight OAuth token cache.

The token is held by an explicit TokenCache owned by the transport instance.
Readers of a valid token return without waiting. When a refresh is needed
the first caller starts it as a task and every concurrent caller awaits that
same task, so they all receive the same token or the same error.
"""
from __future__ import annotations

import asyncio
import base64
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from quote_delivery.models import (
    DEFAULT_TOKEN_SAFETY_MARGIN_SECONDS,
    OAuthToken,
    RenderedNotification,
    utcnow,
)
from quote_delivery.transport.base import Sender, TransportError, classify_http_status

logger = logging.getLogger(__name__)

TokenFetcher = Callable[[], Awaitable[OAuthToken]]


class TokenCache:
    """Process-local cache for one provider's access token."""

    def __init__(
        self,
        fetch: TokenFetcher,
        safety_margin_seconds: int = DEFAULT_TOKEN_SAFETY_MARGIN_SECONDS,
    ) -> None:
        self._fetch = fetch
        self.safety_margin_seconds = safety_margin_seconds
        self._token: Optional[OAuthToken] = None
        self._inflight: Optional[asyncio.Task] = None
        self.refresh_count = 0

    def _valid(self) -> Optional[OAuthToken]:
        token = self._token
        if token is not None and token.is_valid(self.safety_margin_seconds):
            return token
        return None

    async def _refresh(self) -> OAuthToken:
        token = await self._fetch()
        self._token = token
        self.refresh_count += 1
        logger.info(f"Refreshed OAuth access token, expires_at={token.expires_at.isoformat()}")
        return token

    def _refresh_done(self, task: asyncio.Task) -> None:
        self._inflight = None
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"OAuth token refresh failed: {task.exception()}")

    async def get_token(self) -> str:
        token = self._valid()
        if token is not None:
            return token.access_token

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._refresh())
            self._inflight.add_done_callback(self._refresh_done)

        # Shielded so one cancelled caller does not cancel the shared refresh.
        token = await asyncio.shield(self._inflight)
        return token.access_token

    def invalidate(self) -> None:
        self._token = None


class ClientCredentialsTokenSource:
    """Fetches tokens with the OAuth2 client-credentials grant."""

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        scope: str,
        client: httpx.AsyncClient,
    ) -> None:
        self.token_url = token_url
        self.client_id = client_id
        self._client_secret = client_secret
        self.scope = scope
        self._client = client

    async def __call__(self) -> OAuthToken:
        try:
            response = await self._client.post(
                self.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self._client_secret,
                    "scope": self.scope,
                },
            )
        except httpx.HTTPError as e:
            raise TransportError.transient(f"Token request failed: {e}", provider="graph") from e

        if not response.is_success:
            # Credential problems are the provider's, not the message's.
            raise TransportError.transient(
                f"Token endpoint returned {response.status_code}",
                provider="graph",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            access_token = data["access_token"]
            expires_in = int(data.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError) as e:
            raise TransportError.transient("Malformed token response", provider="graph") from e

        return OAuthToken(
            access_token=access_token,
            expires_at=utcnow() + timedelta(seconds=expires_in),
        )


def _recipients(addresses: List[str]) -> List[Dict[str, Any]]:
    return [{"emailAddress": {"address": address}} for address in addresses]


class GraphMailTransport:
    """Sends mail through Graph ``POST /users/{mailbox}/sendMail``."""

    def __init__(
        self,
        token_cache: TokenCache,
        mailbox: str,
        sender: Sender,
        client: httpx.AsyncClient,
        graph_base_url: str = "https://graph.microsoft.com/v1.0",
    ) -> None:
        self.token_cache = token_cache
        self.mailbox = mailbox
        self.sender = sender
        self.graph_base_url = graph_base_url.rstrip("/")
        self._client = client

    @property
    def name(self) -> str:
        return "graph"

    def _build_message(self, notification: RenderedNotification, recipient: str) -> Dict[str, Any]:
        message: Dict[str, Any] = {
            "subject": notification.subject,
            "body": {"contentType": "HTML", "content": notification.html},
            "toRecipients": _recipients([recipient]),
            "from": {"emailAddress": {"address": self.mailbox, "name": self.sender.name}},
        }
        if notification.cc:
            message["ccRecipients"] = _recipients(list(notification.cc))
        if notification.attachments:
            message["attachments"] = [
                {
                    "@odata.type": "#microsoft.graph.fileAttachment",
                    "name": attachment.filename,
                    "contentType": attachment.mime_type,
                    "contentBytes": base64.b64encode(attachment.content).decode("ascii"),
                }
                for attachment in notification.attachments
            ]
        return {"message": message, "saveToSentItems": True}

    async def send(self, notification: RenderedNotification, recipient: str) -> None:
        access_token = await self.token_cache.get_token()
        try:
            response = await self._client.post(
                f"{self.graph_base_url}/users/{self.mailbox}/sendMail",
                json=self._build_message(notification, recipient),
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.TimeoutException as e:
            raise TransportError.transient(f"Graph request timed out: {e}", provider=self.name) from e
        except httpx.HTTPError as e:
            raise TransportError.transient(f"Graph request failed: {e}", provider=self.name) from e

        if response.is_success:
            return

        if response.status_code == 401:
            self.token_cache.invalidate()
        raise TransportError(
            classify_http_status(response.status_code),
            f"Graph sendMail returned {response.status_code}: {response.text[:200]}",
            provider=self.name,
            status_code=response.status_code,
        )
