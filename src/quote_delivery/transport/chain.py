"""Ordered provider failover for notification delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from quote_delivery.exceptions import ConfigurationError
from quote_delivery.logging_config import mask_email
from quote_delivery.models import (
    DeliveryAttempt,
    DeliveryResult,
    ErrorKind,
    FinalStatus,
    RenderedNotification,
)
from quote_delivery.transport.base import NotificationTransport, TransportError

logger = logging.getLogger(__name__)


class TransportChain:
    """
    Tries transports in priority order until one accepts the message.

    Each attempt goes PENDING -> SENT or FAILED. A TRANSIENT failure advances
    to the next transport; a PERMANENT failure stops the chain with
    FinalStatus.REJECTED. Every attempt is bounded by timeout_seconds and a
    timeout counts as TRANSIENT.
    """

    def __init__(
        self,
        transports: Sequence[NotificationTransport],
        timeout_seconds: float = 15.0,
    ) -> None:
        if not transports:
            raise ConfigurationError("Transport chain needs at least one provider")
        self.transports = list(transports)
        self.timeout_seconds = timeout_seconds

    def describe(self) -> list[str]:
        return [transport.name for transport in self.transports]

    async def _attempt(
        self,
        transport: NotificationTransport,
        notification: RenderedNotification,
        recipient: str,
    ) -> DeliveryAttempt:
        try:
            await asyncio.wait_for(
                transport.send(notification, recipient),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return DeliveryAttempt(
                provider=transport.name,
                succeeded=False,
                error_kind=ErrorKind.TRANSIENT,
                error_message=f"timed out after {self.timeout_seconds}s",
            )
        except TransportError as exc:
            return DeliveryAttempt(
                provider=transport.name,
                succeeded=False,
                error_kind=exc.kind,
                error_message=exc.message,
            )
        except Exception as exc:
            logger.exception(f"Transport {transport.name} raised an unnormalized error")
            return DeliveryAttempt(
                provider=transport.name,
                succeeded=False,
                error_kind=ErrorKind.TRANSIENT,
                error_message=str(exc),
            )
        return DeliveryAttempt(provider=transport.name, succeeded=True)

    async def send(self, notification: RenderedNotification, recipient: str) -> DeliveryResult:
        attempts: list[DeliveryAttempt] = []
        for transport in self.transports:
            attempt = await self._attempt(transport, notification, recipient)
            attempts.append(attempt)

            if attempt.succeeded:
                logger.info(f"Delivered to {mask_email(recipient)} via {transport.name}")
                return DeliveryResult(
                    final_status=FinalStatus.DELIVERED,
                    provider_used=transport.name,
                    attempts=attempts,
                )

            if attempt.error_kind == ErrorKind.PERMANENT:
                logger.error(
                    f"Provider {transport.name} rejected message for {mask_email(recipient)}: "
                    f"{attempt.error_message}"
                )
                return DeliveryResult(final_status=FinalStatus.REJECTED, attempts=attempts)

            logger.warning(
                f"Provider {transport.name} failed transiently, trying next: {attempt.error_message}"
            )

        logger.error(f"All {len(attempts)} providers failed for {mask_email(recipient)}")
        return DeliveryResult(final_status=FinalStatus.ALL_PROVIDERS_FAILED, attempts=attempts)
