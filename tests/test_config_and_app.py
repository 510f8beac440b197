from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from conftest import FakeCheckoutProvider
from quote_delivery.config import QuoteDeliverySettings
from quote_delivery.exceptions import ConfigurationError
from quote_delivery.main import build_orchestrator, build_transport_chain, create_app
from quote_delivery.store import InMemoryQuoteStore
from quote_delivery.transport.oauth import GraphMailTransport


def _settings(**overrides) -> QuoteDeliverySettings:
    values = dict(
        _env_file=None,
        public_base_url="https://kockys.example.com/",
        provider_order="graph,sendgrid,smtp",
        oauth={"tenant_id": "tenant", "client_id": "client", "client_secret": "secret"},
        sendgrid={"api_key": "SG.test"},
        smtp={"host": "smtp.example.com"},
        stripe={"secret_key": "sk_test_123"},
        sender={"name": "Kocky's", "email": "info@kockys.example.com", "cc": "office@kockys.example.com, "},
        log_json=False,
    )
    values.update(overrides)
    return QuoteDeliverySettings(**values)


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("QUOTE_DELIVERY_SMTP__HOST", "mail.example.com")
    monkeypatch.setenv("QUOTE_DELIVERY_SENDER__CC", "a@example.com,b@example.com")
    monkeypatch.setenv("QUOTE_DELIVERY_PROVIDER_ORDER", "SMTP")

    settings = QuoteDeliverySettings(_env_file=None)

    assert settings.smtp.host == "mail.example.com"
    assert settings.sender.cc_addresses == ["a@example.com", "b@example.com"]
    assert settings.provider_names == ["smtp"]
    assert settings.public_base_url == "https://kockys.example.com"


@pytest.mark.parametrize("fraction", [0, 1.5, -0.2])
def test_deposit_fraction_is_validated(fraction):
    with pytest.raises(ValidationError):
        _settings(deposit_fraction=fraction)


def test_build_transport_chain_in_configured_order():
    chain = build_transport_chain(_settings(provider_order="sendgrid, graph"))
    assert chain.describe() == ["sendgrid", "graph"]
    graph = chain.transports[1]
    assert isinstance(graph, GraphMailTransport)
    assert graph.mailbox == "info@kockys.example.com"


def test_missing_credentials_fail_fast():
    with pytest.raises(ConfigurationError):
        build_transport_chain(_settings(sendgrid={"api_key": ""}))


def test_unknown_provider_fails_fast():
    with pytest.raises(ConfigurationError):
        build_transport_chain(_settings(provider_order="graph,carrier-pigeon"))


def test_empty_provider_order_fails_fast():
    with pytest.raises(ConfigurationError):
        build_transport_chain(_settings(provider_order=" , "))


def test_missing_stripe_key_fails_fast():
    with pytest.raises(ConfigurationError):
        build_orchestrator(_settings(stripe={"secret_key": ""}), InMemoryQuoteStore())


def test_build_orchestrator_wires_settings():
    orchestrator = build_orchestrator(
        _settings(), InMemoryQuoteStore(), checkout_provider=FakeCheckoutProvider()
    )
    assert orchestrator.cc == ("office@kockys.example.com",)
    assert orchestrator.public_base_url == "https://kockys.example.com"
    assert orchestrator.default_deposit_fraction == 0.2
    assert orchestrator.transport_chain.describe() == ["graph", "sendgrid", "smtp"]


def test_create_app_serves_health_and_provider_list():
    settings = _settings()
    app = create_app(
        settings,
        orchestrator=build_orchestrator(
            settings, InMemoryQuoteStore(), checkout_provider=FakeCheckoutProvider()
        ),
    )
    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/quotes/delivery/providers").json() == {
            "providers": ["graph", "sendgrid", "smtp"]
        }


def test_create_app_requires_a_store():
    with pytest.raises(ConfigurationError):
        create_app(_settings())
