"""
Pytest configuration for quote-delivery tests.
"""
from __future__ import annotations

import os
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(package_src))

# Set test environment
os.environ.setdefault("QUOTE_DELIVERY_ENVIRONMENT", "dev")
os.environ.setdefault("QUOTE_DELIVERY_PUBLIC_BASE_URL", "https://kockys.example.com")

from quote_delivery.exceptions import PaymentProviderUnavailable, TransportError  # noqa: E402
from quote_delivery.models import (  # noqa: E402
    Customer,
    EventDetails,
    LineItem,
    PaymentSession,
    QuoteSnapshot,
    RenderedNotification,
    utcnow,
)
from quote_delivery.payments.base import (  # noqa: E402
    CheckoutProvider,
    CheckoutSessionRequest,
    PaymentStatus,
)


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
def sample_quote() -> QuoteSnapshot:
    """$800.00 quote with two line items."""
    return QuoteSnapshot(
        id="quote_1234567890abcdef",
        number="Q-1001",
        total=80000,
        currency="USD",
        customer=Customer(name="Jane Doe", email="jane@example.com"),
        line_items=[
            LineItem(description="Private room rental", quantity=1, unit_price=50000, line_total=50000),
            LineItem(description="Appetizer platter", quantity=4, unit_price=7500, line_total=30000),
        ],
        event=EventDetails(
            event_date=date.today() + timedelta(days=30),
            location="Patio",
            service_type="Private event",
        ),
        valid_until=date.today() + timedelta(days=14),
        terms="Deposit is non-refundable within 7 days of the event.",
    )


class FakeCheckoutProvider(CheckoutProvider):
    """Records create calls and returns deterministic sessions."""

    def __init__(self, fail: bool = False, ttl: timedelta = timedelta(hours=24)) -> None:
        self.fail = fail
        self.ttl = ttl
        self.requests: list[CheckoutSessionRequest] = []
        self.status = PaymentStatus.UNPAID

    @property
    def name(self) -> str:
        return "fake"

    async def create_checkout_session(self, request: CheckoutSessionRequest) -> PaymentSession:
        self.requests.append(request)
        if self.fail:
            raise PaymentProviderUnavailable("provider down")
        now = utcnow()
        number = len(self.requests)
        return PaymentSession(
            session_id=f"cs_test_{number}",
            checkout_url=f"https://checkout.example.com/pay/cs_test_{number}",
            mode=request.mode,
            amount=request.amount,
            quote_id=request.quote_id,
            created_at=now,
            expires_at=now + self.ttl,
            currency=request.currency,
            idempotency_key=request.idempotency_key,
            generation=request.generation,
        )

    async def get_payment_status(self, session_id: str) -> PaymentStatus:
        return self.status


class FakeTransport:
    """Transport that succeeds or raises a preset TransportError."""

    def __init__(self, name: str, error: TransportError | None = None) -> None:
        self._name = name
        self.error = error
        self.sent: list[tuple[RenderedNotification, str]] = []

    @property
    def name(self) -> str:
        return self._name

    async def send(self, notification: RenderedNotification, recipient: str) -> None:
        self.sent.append((notification, recipient))
        if self.error is not None:
            raise self.error


@pytest.fixture
def checkout_provider() -> FakeCheckoutProvider:
    return FakeCheckoutProvider()
