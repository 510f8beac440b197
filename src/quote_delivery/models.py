"""Quote delivery data models."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# Seconds before expiry at which a cached OAuth token is treated as expired.
DEFAULT_TOKEN_SAFETY_MARGIN_SECONDS = 60
# Stripe caps checkout session lifetime at 24 hours.
DEFAULT_SESSION_TTL_HOURS = 24


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentMode(str, Enum):
    """Which portion of a quote a checkout session collects."""
    DEPOSIT = "deposit"
    FULL = "full"


class ErrorKind(str, Enum):
    """Normalized provider error classes.

    TRANSIENT failures (network, auth, timeouts, 5xx) advance the transport
    chain; PERMANENT failures (the message itself is unacceptable) stop it.
    """
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class AttemptStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class FinalStatus(str, Enum):
    """Outcome of a delivery through the transport chain."""
    DELIVERED = "Delivered"
    ALL_PROVIDERS_FAILED = "AllProvidersFailed"
    REJECTED = "Rejected"


class Degradation(str, Enum):
    """Optional pieces of a quote email that were dropped during a send."""
    DOCUMENT = "document"
    PAYMENT = "payment"


@dataclass(frozen=True)
class LineItem:
    """Single itemized row of a quote. Money is in integer minor units."""
    description: str
    quantity: int
    unit_price: int
    line_total: int


@dataclass(frozen=True)
class Customer:
    name: str
    email: str


@dataclass(frozen=True)
class EventDetails:
    event_date: Optional[date] = None
    location: Optional[str] = None
    service_type: Optional[str] = None


@dataclass(frozen=True)
class QuoteSnapshot:
    """Immutable point-in-time projection of a quote taken at send time."""
    id: str
    number: str
    total: int
    currency: str
    customer: Customer
    line_items: tuple[LineItem, ...] = ()
    event: Optional[EventDetails] = None
    valid_until: Optional[date] = None
    notes: Optional[str] = None
    terms: Optional[str] = None
    deposit_fraction: Optional[float] = None

    def __post_init__(self) -> None:
        # Callers may hand in a list; freeze it so the snapshot stays immutable.
        if not isinstance(self.line_items, tuple):
            object.__setattr__(self, "line_items", tuple(self.line_items))


@dataclass(frozen=True)
class PaymentSession:
    """Checkout session owned by the payment session manager."""
    session_id: str
    checkout_url: str
    mode: PaymentMode
    amount: int
    quote_id: str
    created_at: datetime
    expires_at: datetime
    currency: str = "USD"
    idempotency_key: str = ""
    generation: int = 0

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    mime_type: str = "application/pdf"


@dataclass(frozen=True)
class RenderedNotification:
    """Fully rendered email, produced and consumed within one send."""
    subject: str
    html: str
    text: str
    attachments: tuple[Attachment, ...] = ()
    cc: tuple[str, ...] = ()


@dataclass(frozen=True)
class OAuthToken:
    access_token: str
    expires_at: datetime

    def is_valid(
        self,
        margin_seconds: int = DEFAULT_TOKEN_SAFETY_MARGIN_SECONDS,
        now: Optional[datetime] = None,
    ) -> bool:
        remaining = (self.expires_at - (now or utcnow())).total_seconds()
        return remaining > margin_seconds


@dataclass(frozen=True)
class DeliveryAttempt:
    """One provider attempt inside a transport chain run."""
    provider: str
    succeeded: bool
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def status(self) -> AttemptStatus:
        return AttemptStatus.SENT if self.succeeded else AttemptStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "succeeded": self.succeeded,
            "status": self.status.value,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error_message": self.error_message,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class DeliveryResult:
    """Composite outcome of a send, suitable for audit logging."""
    final_status: FinalStatus
    provider_used: Optional[str] = None
    attempts: List[DeliveryAttempt] = field(default_factory=list)
    degradations: List[Degradation] = field(default_factory=list)
    checkout_url: Optional[str] = None
    session_id: Optional[str] = None
    payment_amount: Optional[int] = None

    @property
    def delivered(self) -> bool:
        return self.final_status == FinalStatus.DELIVERED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.final_status.value,
            "provider_used": self.provider_used,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "degradations": [d.value for d in self.degradations],
            "checkout_url": self.checkout_url,
            "session_id": self.session_id,
            "payment_amount": self.payment_amount,
        }
