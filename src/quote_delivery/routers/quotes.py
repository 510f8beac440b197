"""Quote delivery endpoints invoked by the admin "Send Quote" action."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from quote_delivery.exceptions import (
    AllProvidersFailed,
    DeliveryRejected,
    QuoteDeliveryError,
)
from quote_delivery.models import FinalStatus, PaymentMode
from quote_delivery.orchestrator import QuoteDeliveryOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotes", tags=["quotes"])


@dataclass
class QuoteDeliveryDeps:
    orchestrator: QuoteDeliveryOrchestrator


def get_deps() -> QuoteDeliveryDeps:
    """Dependency injection placeholder."""
    raise NotImplementedError("Must be overridden")


class SendQuoteRequest(BaseModel):
    mode: PaymentMode = Field(default=PaymentMode.DEPOSIT)


class DeliveryAttemptItem(BaseModel):
    provider: str
    succeeded: bool
    status: str
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: str


class SendQuoteResponse(BaseModel):
    status: str
    checkout_url: Optional[str] = None
    session_id: Optional[str] = None
    degradations: list[str] = Field(default_factory=list)
    provider_used: Optional[str] = None
    payment_amount: Optional[int] = None
    attempts: list[DeliveryAttemptItem] = Field(default_factory=list)


class ProviderChainResponse(BaseModel):
    providers: list[str]


def _http_error(exc: QuoteDeliveryError) -> HTTPException:
    return HTTPException(status_code=exc.http_status, detail=exc.to_dict())


@router.post("/{quote_id}/send", response_model=SendQuoteResponse)
async def send_quote(
    quote_id: str,
    payload: Optional[SendQuoteRequest] = None,
    deps: QuoteDeliveryDeps = Depends(get_deps),
) -> dict[str, Any]:
    mode = payload.mode if payload else PaymentMode.DEPOSIT
    try:
        result = await deps.orchestrator.send_quote(quote_id, mode)
    except QuoteDeliveryError as exc:
        logger.warning(f"Send of quote {quote_id} failed: {exc.error_code}")
        raise _http_error(exc) from exc

    body = result.to_dict()
    if result.final_status == FinalStatus.REJECTED:
        raise _http_error(
            DeliveryRejected("Email provider rejected the quote message", details=body)
        )
    if result.final_status == FinalStatus.ALL_PROVIDERS_FAILED:
        raise _http_error(
            AllProvidersFailed("Every email provider failed to deliver the quote", details=body)
        )
    return body


@router.get("/delivery/providers", response_model=ProviderChainResponse)
async def list_delivery_providers(
    deps: QuoteDeliveryDeps = Depends(get_deps),
) -> dict[str, Any]:
    return {"providers": deps.orchestrator.transport_chain.describe()}
