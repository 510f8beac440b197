"""Checkout session creation and reuse."""
from quote_delivery.payments.base import (
    CheckoutProvider,
    CheckoutSessionRequest,
    PaymentStatus,
)
from quote_delivery.payments.sessions import (
    InMemoryPaymentSessionStore,
    PaymentSessionManager,
    PaymentSessionStore,
    compute_payment_amount,
    session_idempotency_key,
)
from quote_delivery.payments.stripe import StripeCheckoutProvider

__all__ = [
    "CheckoutProvider",
    "CheckoutSessionRequest",
    "InMemoryPaymentSessionStore",
    "PaymentSessionManager",
    "PaymentSessionStore",
    "PaymentStatus",
    "StripeCheckoutProvider",
    "compute_payment_amount",
    "session_idempotency_key",
]
