"""Stripe Checkout provider.

Talks to the Stripe REST API directly over httpx. Stripe expects
form-encoded bodies with bracketed keys for nested values
(``line_items[0][price_data][currency]=usd``).
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from quote_delivery.exceptions import ConfigurationError, PaymentProviderUnavailable
from quote_delivery.models import PaymentSession, utcnow
from quote_delivery.payments.base import (
    CheckoutProvider,
    CheckoutSessionRequest,
    PaymentStatus,
)

logger = logging.getLogger(__name__)


def encode_form(params: Dict[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """Flatten nested dicts/lists into Stripe's bracketed form fields."""
    fields: List[Tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            fields.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, dict):
                    fields.extend(encode_form(item, item_name))
                else:
                    fields.append((item_name, str(item)))
        elif isinstance(value, bool):
            fields.append((name, "true" if value else "false"))
        else:
            fields.append((name, str(value)))
    return fields


class StripeCheckoutProvider(CheckoutProvider):
    """Stripe Checkout session provider."""

    def __init__(
        self,
        secret_key: str,
        api_base: str = "https://api.stripe.com/v1",
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not secret_key:
            raise ConfigurationError("Stripe secret key is required for checkout sessions")
        self.api_base = api_base.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.api_base,
            auth=(secret_key, ""),
            timeout=timeout_seconds,
        )

    @property
    def name(self) -> str:
        return "stripe"

    def _build_payload(self, request: CheckoutSessionRequest) -> Dict[str, Any]:
        metadata = {
            "quote_id": request.quote_id,
            "payment_mode": request.mode.value,
            "customer_email": request.customer_email,
            "amount": request.amount,
        }
        return {
            "mode": "payment",
            "payment_method_types": ["card"],
            "customer_email": request.customer_email,
            "line_items": [
                {
                    "price_data": {
                        "currency": request.currency.lower(),
                        "product_data": {
                            "name": f"Quote {request.quote_number}",
                            "description": request.description,
                        },
                        "unit_amount": request.amount,
                    },
                    "quantity": 1,
                }
            ],
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "expires_at": int(request.expires_at.timestamp()),
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise PaymentProviderUnavailable(f"Stripe request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise PaymentProviderUnavailable(f"Stripe request failed: {e}") from e

        if response.status_code >= 400:
            message = response.text[:200]
            try:
                message = response.json().get("error", {}).get("message", message)
            except ValueError:
                pass
            raise PaymentProviderUnavailable(
                f"Stripe returned {response.status_code}: {message}",
                details={"status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise PaymentProviderUnavailable("Stripe returned a non-JSON response") from e

    async def create_checkout_session(
        self,
        request: CheckoutSessionRequest,
    ) -> PaymentSession:
        """Create Stripe Checkout session."""
        data = await self._request(
            "POST",
            "/checkout/sessions",
            data=dict(encode_form(self._build_payload(request))),
            headers={"Idempotency-Key": request.idempotency_key},
        )

        session_id = data.get("id")
        checkout_url = data.get("url")
        if not session_id or not checkout_url:
            raise PaymentProviderUnavailable("Stripe response is missing session id or url")

        created = data.get("created")
        expires = data.get("expires_at")
        session = PaymentSession(
            session_id=session_id,
            checkout_url=checkout_url,
            mode=request.mode,
            amount=request.amount,
            quote_id=request.quote_id,
            created_at=datetime.fromtimestamp(created, tz=timezone.utc) if created else utcnow(),
            expires_at=(
                datetime.fromtimestamp(expires, tz=timezone.utc) if expires else request.expires_at
            ),
            currency=request.currency,
            idempotency_key=request.idempotency_key,
            generation=request.generation,
        )
        logger.info(
            f"Created Stripe checkout session {session_id} "
            f"quote={request.quote_id} mode={request.mode.value} amount={request.amount}"
        )
        return session

    async def get_payment_status(self, session_id: str) -> PaymentStatus:
        """Get Stripe checkout session status."""
        data = await self._request("GET", f"/checkout/sessions/{session_id}")

        if data.get("status") == "expired":
            return PaymentStatus.EXPIRED

        status_map = {
            "paid": PaymentStatus.PAID,
            "no_payment_required": PaymentStatus.PAID,
            "unpaid": PaymentStatus.UNPAID,
        }
        return status_map.get(data.get("payment_status", ""), PaymentStatus.UNKNOWN)

    async def close(self) -> None:
        await self._client.aclose()
