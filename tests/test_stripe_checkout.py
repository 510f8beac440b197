from __future__ import annotations

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qsl

import httpx
import pytest

from quote_delivery.exceptions import ConfigurationError, PaymentProviderUnavailable
from quote_delivery.models import PaymentMode, utcnow
from quote_delivery.payments.base import CheckoutSessionRequest, PaymentStatus
from quote_delivery.payments.sessions import PaymentSessionManager, session_idempotency_key
from quote_delivery.payments.stripe import StripeCheckoutProvider, encode_form


def _request(**overrides) -> CheckoutSessionRequest:
    values = dict(
        quote_id="q1",
        quote_number="Q-1001",
        mode=PaymentMode.DEPOSIT,
        amount=16000,
        currency="USD",
        customer_email="jane@example.com",
        idempotency_key="abc123:0",
        success_url="https://kockys.example.com/quotes/success?quoteId=q1",
        cancel_url="https://kockys.example.com/quotes/cancel?quoteId=q1",
        expires_at=utcnow() + timedelta(hours=24),
    )
    values.update(overrides)
    return CheckoutSessionRequest(**values)


def _provider(handler) -> StripeCheckoutProvider:
    client = httpx.AsyncClient(
        base_url="https://api.stripe.test/v1",
        transport=httpx.MockTransport(handler),
    )
    return StripeCheckoutProvider(secret_key="sk_test_123", client=client)


def test_missing_secret_key_is_configuration_error():
    with pytest.raises(ConfigurationError):
        StripeCheckoutProvider(secret_key="")


def test_encode_form_flattens_nested_values():
    fields = encode_form({"line_items": [{"price_data": {"unit_amount": 100}}], "metadata": {"a": "b"}})
    assert ("line_items[0][price_data][unit_amount]", "100") in fields
    assert ("metadata[a]", "b") in fields


@pytest.mark.asyncio
async def test_create_checkout_session_posts_form_with_idempotency_key():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["idempotency_key"] = request.headers.get("Idempotency-Key")
        captured["form"] = dict(parse_qsl(request.content.decode()))
        return httpx.Response(
            200,
            json={"id": "cs_test_42", "url": "https://checkout.stripe.com/c/cs_test_42", "created": 1700000000},
        )

    provider = _provider(handler)
    session = await provider.create_checkout_session(_request())

    assert session.session_id == "cs_test_42"
    assert session.checkout_url == "https://checkout.stripe.com/c/cs_test_42"
    assert session.amount == 16000
    assert captured["path"] == "/v1/checkout/sessions"
    assert captured["idempotency_key"] == "abc123:0"
    form = captured["form"]
    assert form["line_items[0][price_data][unit_amount]"] == "16000"
    assert form["line_items[0][price_data][currency]"] == "usd"
    assert form["line_items[0][price_data][product_data][name]"] == "Quote Q-1001"
    assert form["line_items[0][price_data][product_data][description]"] == "Deposit for Quote Q-1001"
    assert form["metadata[quote_id]"] == "q1"
    assert form["payment_intent_data[metadata][payment_mode]"] == "deposit"
    assert form["customer_email"] == "jane@example.com"
    await provider.close()


@pytest.mark.asyncio
async def test_provider_error_maps_to_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": {"message": "boom"}})

    provider = _provider(handler)
    with pytest.raises(PaymentProviderUnavailable) as exc_info:
        await provider.create_checkout_session(_request())
    assert exc_info.value.details["status_code"] == 500


@pytest.mark.asyncio
async def test_network_error_maps_to_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = _provider(handler)
    with pytest.raises(PaymentProviderUnavailable):
        await provider.create_checkout_session(_request())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body,expected",
    [
        ({"status": "complete", "payment_status": "paid"}, PaymentStatus.PAID),
        ({"status": "open", "payment_status": "unpaid"}, PaymentStatus.UNPAID),
        ({"status": "expired", "payment_status": "unpaid"}, PaymentStatus.EXPIRED),
        ({"status": "open"}, PaymentStatus.UNKNOWN),
    ],
)
async def test_get_payment_status(body, expected):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/checkout/sessions/cs_test_42"
        return httpx.Response(200, json=body)

    provider = _provider(handler)
    assert await provider.get_payment_status("cs_test_42") == expected


class _StripeRecorder:
    """MockTransport handler that records every checkout creation."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls: list[tuple[str, dict[str, str]]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(
            (request.headers.get("Idempotency-Key"), dict(parse_qsl(request.content.decode())))
        )
        if self.failures:
            self.failures -= 1
            raise httpx.ReadTimeout("slow", request=request)
        number = len(self.calls)
        return httpx.Response(
            200,
            json={"id": f"cs_test_{number}", "url": f"https://checkout.stripe.com/c/cs_test_{number}"},
        )


def _manager(recorder: _StripeRecorder) -> PaymentSessionManager:
    return PaymentSessionManager(_provider(recorder), public_base_url="https://kockys.example.com")


def _clock(monkeypatch, *times: datetime) -> None:
    ticks = iter(times)
    monkeypatch.setattr("quote_delivery.payments.sessions.utcnow", lambda: next(ticks))


@pytest.mark.asyncio
async def test_manager_creates_and_reuses_stripe_session():
    recorder = _StripeRecorder()
    manager = _manager(recorder)

    first = await manager.get_or_create_session(
        "q1", PaymentMode.DEPOSIT, 80000, 0.2, "jane@example.com", quote_number="Q-1001"
    )
    second = await manager.get_or_create_session(
        "q1", PaymentMode.DEPOSIT, 80000, 0.2, "jane@example.com", quote_number="Q-1001"
    )

    assert first.session_id == second.session_id == "cs_test_1"
    assert len(recorder.calls) == 1
    remote_key, form = recorder.calls[0]
    assert remote_key.startswith(f"{session_idempotency_key('q1', PaymentMode.DEPOSIT)}:0:")
    assert form["mode"] == "payment"
    assert form["payment_method_types[0]"] == "card"
    assert form["line_items[0][price_data][unit_amount]"] == "16000"
    assert form["line_items[0][quantity]"] == "1"
    assert form["metadata[amount]"] == "16000"
    assert form["success_url"] == (
        "https://kockys.example.com/quotes/success?quoteId=q1&session_id={CHECKOUT_SESSION_ID}"
    )
    assert form["cancel_url"] == "https://kockys.example.com/quotes/cancel?quoteId=q1"
    assert int(form["expires_at"]) == int(first.expires_at.timestamp())


@pytest.mark.asyncio
async def test_retry_after_timeout_resends_identical_request(monkeypatch):
    start = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    _clock(monkeypatch, start, start + timedelta(minutes=5))
    recorder = _StripeRecorder(failures=1)
    manager = _manager(recorder)

    with pytest.raises(PaymentProviderUnavailable):
        await manager.get_or_create_session("q1", PaymentMode.DEPOSIT, 80000, 0.2, "jane@example.com")
    session = await manager.get_or_create_session("q1", PaymentMode.DEPOSIT, 80000, 0.2, "jane@example.com")

    assert session.session_id == "cs_test_2"
    assert len(recorder.calls) == 2
    (first_key, first_form), (second_key, second_form) = recorder.calls
    assert first_key == second_key
    assert first_form == second_form
    assert int(second_form["expires_at"]) == int((start + timedelta(hours=24)).timestamp())


@pytest.mark.asyncio
async def test_retry_with_changed_amount_uses_new_remote_key(monkeypatch):
    start = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    _clock(monkeypatch, start, start + timedelta(minutes=5))
    recorder = _StripeRecorder(failures=1)
    manager = _manager(recorder)

    with pytest.raises(PaymentProviderUnavailable):
        await manager.get_or_create_session("q1", PaymentMode.DEPOSIT, 80000, 0.2, "jane@example.com")
    await manager.get_or_create_session("q1", PaymentMode.DEPOSIT, 100000, 0.2, "jane@example.com")

    (first_key, first_form), (second_key, second_form) = recorder.calls
    assert first_key != second_key
    assert second_form["line_items[0][price_data][unit_amount]"] == "20000"
