"""Exception hierarchy for the quote delivery pipeline.

Every pipeline error inherits from QuoteDeliveryError so the HTTP layer can
map it to a status code and a structured body without knowing the concrete
class:

- error_code: machine-readable code (e.g. "QUOTE_NOT_FOUND")
- http_status: status code for API responses
- message: human-readable message
- retryable: whether the same request may succeed later
- details: optional context dictionary
- to_dict(): API response body

Classification used by the orchestrator:

- fatal: QuoteNotFound, StoreUnavailable, InvalidAmount, DeliveryRejected
- degradable: DocumentGenerationError, PaymentProviderUnavailable
- startup/programmer errors: ConfigurationError, TemplateNotFound
"""
from __future__ import annotations

from typing import Any, Optional

from quote_delivery.models import ErrorKind


class QuoteDeliveryError(Exception):
    """Base exception for all quote delivery errors."""

    error_code: str = "QUOTE_DELIVERY_ERROR"
    http_status: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        result = {
            "error": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Quote store
# =============================================================================

class QuoteNotFound(QuoteDeliveryError):
    error_code = "QUOTE_NOT_FOUND"
    http_status = 404

    def __init__(self, quote_id: str, details: Optional[dict[str, Any]] = None) -> None:
        details = details or {}
        details["quote_id"] = quote_id
        super().__init__(f"Quote '{quote_id}' not found", details=details)
        self.quote_id = quote_id


class StoreUnavailable(QuoteDeliveryError):
    error_code = "STORE_UNAVAILABLE"
    http_status = 503
    retryable = True


# =============================================================================
# Payment sessions
# =============================================================================

class InvalidAmount(QuoteDeliveryError):
    """Payment amount is zero, negative or otherwise unusable. Never retried."""

    error_code = "INVALID_AMOUNT"
    http_status = 422


class PaymentProviderUnavailable(QuoteDeliveryError):
    """Payment provider could not create or look up a session right now."""

    error_code = "PAYMENT_PROVIDER_UNAVAILABLE"
    http_status = 503
    retryable = True


# =============================================================================
# Content
# =============================================================================

class DocumentGenerationError(QuoteDeliveryError):
    error_code = "DOCUMENT_GENERATION_ERROR"
    http_status = 500


class TemplateNotFound(QuoteDeliveryError):
    error_code = "TEMPLATE_NOT_FOUND"
    http_status = 500

    def __init__(self, template_name: str) -> None:
        super().__init__(
            f"Email template '{template_name}' is not registered",
            details={"template": template_name},
        )
        self.template_name = template_name


class ConfigurationError(QuoteDeliveryError):
    error_code = "CONFIGURATION_ERROR"
    http_status = 500


# =============================================================================
# Transport
# =============================================================================

class TransportError(QuoteDeliveryError):
    """Normalized failure raised by every notification transport adapter.

    `kind` decides whether the transport chain advances to the next provider
    (TRANSIENT) or stops (PERMANENT).
    """

    error_code = "TRANSPORT_ERROR"
    http_status = 502

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        provider: str = "",
        status_code: Optional[int] = None,
    ) -> None:
        details: dict[str, Any] = {"kind": kind.value}
        if provider:
            details["provider"] = provider
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details=details)
        self.kind = kind
        self.provider = provider
        self.status_code = status_code

    @classmethod
    def transient(cls, message: str, provider: str = "", status_code: Optional[int] = None) -> "TransportError":
        return cls(ErrorKind.TRANSIENT, message, provider=provider, status_code=status_code)

    @classmethod
    def permanent(cls, message: str, provider: str = "", status_code: Optional[int] = None) -> "TransportError":
        return cls(ErrorKind.PERMANENT, message, provider=provider, status_code=status_code)


class DeliveryRejected(QuoteDeliveryError):
    """A provider refused the message content; no other provider is tried."""

    error_code = "REJECTED"
    http_status = 422


class AllProvidersFailed(QuoteDeliveryError):
    error_code = "ALL_PROVIDERS_FAILED"
    http_status = 502
    retryable = True
