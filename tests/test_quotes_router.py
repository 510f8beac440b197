from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from quote_delivery.exceptions import InvalidAmount, PaymentProviderUnavailable, QuoteNotFound
from quote_delivery.models import (
    Degradation,
    DeliveryAttempt,
    DeliveryResult,
    ErrorKind,
    FinalStatus,
    PaymentMode,
)
from quote_delivery.routers.quotes import QuoteDeliveryDeps, get_deps, router


def _build_app(send_result=None, send_error=None) -> tuple[TestClient, MagicMock]:
    orchestrator = MagicMock()
    orchestrator.send_quote = AsyncMock(return_value=send_result, side_effect=send_error)
    orchestrator.transport_chain.describe.return_value = ["graph", "sendgrid", "smtp"]

    app = FastAPI()
    app.dependency_overrides[get_deps] = lambda: QuoteDeliveryDeps(orchestrator=orchestrator)
    app.include_router(router)
    return TestClient(app), orchestrator


def test_send_quote_returns_delivery_summary():
    result = DeliveryResult(
        final_status=FinalStatus.DELIVERED,
        provider_used="sendgrid",
        attempts=[
            DeliveryAttempt(provider="graph", succeeded=False, error_kind=ErrorKind.TRANSIENT, error_message="503"),
            DeliveryAttempt(provider="sendgrid", succeeded=True),
        ],
        degradations=[Degradation.DOCUMENT],
        checkout_url="https://checkout.example.com/pay/cs_1",
        session_id="cs_1",
        payment_amount=16000,
    )
    client, orchestrator = _build_app(send_result=result)

    response = client.post("/quotes/quote_1/send", json={"mode": "deposit"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "Delivered"
    assert body["checkout_url"] == "https://checkout.example.com/pay/cs_1"
    assert body["session_id"] == "cs_1"
    assert body["degradations"] == ["document"]
    assert [a["provider"] for a in body["attempts"]] == ["graph", "sendgrid"]
    orchestrator.send_quote.assert_awaited_once_with("quote_1", PaymentMode.DEPOSIT)


def test_send_quote_defaults_to_deposit_mode():
    client, orchestrator = _build_app(send_result=DeliveryResult(final_status=FinalStatus.DELIVERED))
    response = client.post("/quotes/quote_1/send")
    assert response.status_code == 200
    orchestrator.send_quote.assert_awaited_once_with("quote_1", PaymentMode.DEPOSIT)


def test_unknown_quote_returns_404():
    client, _ = _build_app(send_error=QuoteNotFound("quote_missing"))
    response = client.post("/quotes/quote_missing/send", json={"mode": "full"})
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "QUOTE_NOT_FOUND"
    assert response.json()["detail"]["retryable"] is False


def test_invalid_amount_returns_422():
    client, _ = _build_app(send_error=InvalidAmount("Quote total must be positive"))
    response = client.post("/quotes/quote_1/send", json={"mode": "full"})
    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "INVALID_AMOUNT"


def test_all_providers_failed_returns_502_with_attempts():
    result = DeliveryResult(
        final_status=FinalStatus.ALL_PROVIDERS_FAILED,
        attempts=[DeliveryAttempt(provider="smtp", succeeded=False, error_kind=ErrorKind.TRANSIENT)],
    )
    client, _ = _build_app(send_result=result)
    response = client.post("/quotes/quote_1/send", json={"mode": "deposit"})

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["error"] == "ALL_PROVIDERS_FAILED"
    assert detail["retryable"] is True
    assert detail["details"]["attempts"][0]["provider"] == "smtp"


def test_rejected_returns_422():
    result = DeliveryResult(
        final_status=FinalStatus.REJECTED,
        attempts=[DeliveryAttempt(provider="graph", succeeded=False, error_kind=ErrorKind.PERMANENT)],
        session_id="cs_1",
    )
    client, _ = _build_app(send_result=result)
    response = client.post("/quotes/quote_1/send", json={"mode": "deposit"})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["error"] == "REJECTED"
    assert detail["details"]["session_id"] == "cs_1"


def test_invalid_mode_is_rejected_by_validation():
    client, orchestrator = _build_app(send_result=DeliveryResult(final_status=FinalStatus.DELIVERED))
    response = client.post("/quotes/quote_1/send", json={"mode": "half"})
    assert response.status_code == 422
    orchestrator.send_quote.assert_not_awaited()


def test_list_delivery_providers():
    client, _ = _build_app()
    response = client.get("/quotes/delivery/providers")
    assert response.status_code == 200
    assert response.json() == {"providers": ["graph", "sendgrid", "smtp"]}


def test_payment_provider_outage_returns_503_and_is_retryable():
    client, _ = _build_app(send_error=PaymentProviderUnavailable("Stripe unreachable"))
    response = client.post("/quotes/quote_1/send", json={"mode": "deposit"})

    assert response.status_code == 503
    detail = response.json()["detail"]
    assert detail["error"] == "PAYMENT_PROVIDER_UNAVAILABLE"
    assert detail["retryable"] is True
