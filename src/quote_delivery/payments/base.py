"""Base checkout provider interface."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from quote_delivery.models import PaymentMode, PaymentSession


class PaymentStatus(str, Enum):
    """Remote payment state of a checkout session."""
    PAID = "paid"
    UNPAID = "unpaid"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CheckoutSessionRequest:
    """Everything a provider needs to create one checkout session."""
    quote_id: str
    quote_number: str
    mode: PaymentMode
    amount: int
    currency: str
    customer_email: str
    idempotency_key: str
    success_url: str
    cancel_url: str
    expires_at: datetime
    generation: int = 0

    @property
    def description(self) -> str:
        prefix = "Deposit for" if self.mode == PaymentMode.DEPOSIT else "Payment for"
        return f"{prefix} Quote {self.quote_number}"


class CheckoutProvider(ABC):
    """Abstract interface for hosted checkout providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def create_checkout_session(
        self,
        request: CheckoutSessionRequest,
    ) -> PaymentSession:
        """
        Create a checkout session with the provider.

        The provider must forward request.idempotency_key so that a retried
        creation returns the original session instead of a new one.

        Raises:
            PaymentProviderUnavailable: On network, auth or provider faults
        """
        pass

    @abstractmethod
    async def get_payment_status(self, session_id: str) -> PaymentStatus:
        """
        Get the payment status of an existing session.

        Raises:
            PaymentProviderUnavailable: On network, auth or provider faults
        """
        pass

    async def close(self) -> None:
        """Release network resources held by the provider."""
        return None
