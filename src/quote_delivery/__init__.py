"""Quote delivery pipeline: PDF, checkout link and failover email for a sales quote."""
from quote_delivery.exceptions import (
    AllProvidersFailed,
    ConfigurationError,
    DeliveryRejected,
    DocumentGenerationError,
    InvalidAmount,
    PaymentProviderUnavailable,
    QuoteDeliveryError,
    QuoteNotFound,
    StoreUnavailable,
    TemplateNotFound,
)
from quote_delivery.models import (
    Customer,
    Degradation,
    DeliveryAttempt,
    DeliveryResult,
    EventDetails,
    FinalStatus,
    LineItem,
    PaymentMode,
    PaymentSession,
    QuoteSnapshot,
)
from quote_delivery.orchestrator import QuoteDeliveryOrchestrator

__version__ = "0.1.0"

__all__ = [
    "AllProvidersFailed",
    "ConfigurationError",
    "Customer",
    "Degradation",
    "DeliveryAttempt",
    "DeliveryRejected",
    "DeliveryResult",
    "DocumentGenerationError",
    "EventDetails",
    "FinalStatus",
    "InvalidAmount",
    "LineItem",
    "PaymentMode",
    "PaymentProviderUnavailable",
    "PaymentSession",
    "QuoteDeliveryError",
    "QuoteDeliveryOrchestrator",
    "QuoteNotFound",
    "QuoteSnapshot",
    "StoreUnavailable",
    "TemplateNotFound",
]
