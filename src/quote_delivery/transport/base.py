"""Notification transport contracts shared by every provider adapter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from quote_delivery.exceptions import TransportError
from quote_delivery.models import ErrorKind, RenderedNotification

__all__ = [
    "NotificationTransport",
    "Sender",
    "TransportError",
    "classify_http_status",
    "format_address",
]


@dataclass(frozen=True)
class Sender:
    """Sender identity stamped on every outgoing message."""

    name: str
    email: str


def format_address(sender: Sender) -> str:
    return f"{sender.name} <{sender.email}>" if sender.name else sender.email


def classify_http_status(status_code: int) -> ErrorKind:
    """
    Map a provider HTTP status to the chain's advance-or-stop decision.

    Redirects, auth failures, throttling and server faults belong to the
    provider and another provider may succeed. Other 4xx responses mean the
    message itself was refused.
    """
    if 300 <= status_code < 400 or status_code in (401, 403, 408, 429) or status_code >= 500:
        return ErrorKind.TRANSIENT
    return ErrorKind.PERMANENT


class NotificationTransport(Protocol):
    """Adapter protocol for email providers.

    Implementations return normally on acceptance and raise TransportError
    for every delivery failure.
    """

    @property
    def name(self) -> str:
        ...

    async def send(self, notification: RenderedNotification, recipient: str) -> None:
        ...
