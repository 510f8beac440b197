"""Application wiring: settings -> pipeline components -> FastAPI app."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from quote_delivery.config import QuoteDeliverySettings, load_settings
from quote_delivery.documents import QuoteDocumentGenerator
from quote_delivery.exceptions import ConfigurationError
from quote_delivery.logging_config import setup_logging
from quote_delivery.orchestrator import QuoteDeliveryOrchestrator
from quote_delivery.payments.base import CheckoutProvider
from quote_delivery.payments.sessions import PaymentSessionManager, PaymentSessionStore
from quote_delivery.payments.stripe import StripeCheckoutProvider
from quote_delivery.routers import quotes as quotes_router
from quote_delivery.store import QuoteStore
from quote_delivery.templates import TemplateRenderer
from quote_delivery.transport.base import NotificationTransport, Sender
from quote_delivery.transport.chain import TransportChain
from quote_delivery.transport.oauth import (
    ClientCredentialsTokenSource,
    GraphMailTransport,
    TokenCache,
)
from quote_delivery.transport.sendgrid import SendGridTransport
from quote_delivery.transport.smtp import SmtpTransport

logger = logging.getLogger(__name__)


def _build_transport(
    name: str,
    settings: QuoteDeliverySettings,
    sender: Sender,
    client: httpx.AsyncClient,
) -> NotificationTransport:
    if name == "graph":
        oauth = settings.oauth
        if not oauth.is_configured:
            raise ConfigurationError(
                "Provider 'graph' needs tenant_id, client_id and client_secret"
            )
        token_source = ClientCredentialsTokenSource(
            token_url=oauth.token_url,
            client_id=oauth.client_id,
            client_secret=oauth.client_secret,
            scope=oauth.scope,
            client=client,
        )
        return GraphMailTransport(
            token_cache=TokenCache(token_source, oauth.safety_margin_seconds),
            mailbox=oauth.mailbox or sender.email,
            sender=sender,
            client=client,
            graph_base_url=oauth.graph_base_url,
        )
    if name == "sendgrid":
        if not settings.sendgrid.is_configured:
            raise ConfigurationError("Provider 'sendgrid' needs an api_key")
        return SendGridTransport(
            api_key=settings.sendgrid.api_key,
            sender=sender,
            client=client,
            api_base=settings.sendgrid.api_base,
        )
    if name == "smtp":
        smtp = settings.smtp
        if not smtp.is_configured:
            raise ConfigurationError("Provider 'smtp' needs a host")
        return SmtpTransport(
            host=smtp.host,
            port=smtp.port,
            username=smtp.username,
            password=smtp.password,
            sender=sender,
            use_tls=smtp.use_tls,
            timeout_seconds=settings.provider_timeout_seconds,
        )
    raise ConfigurationError(f"Unknown email provider '{name}'")


def build_transport_chain(
    settings: QuoteDeliverySettings,
    client: Optional[httpx.AsyncClient] = None,
) -> TransportChain:
    """
    Build the provider chain in configured order.

    Raises:
        ConfigurationError: Unknown provider, missing credentials, or an
            empty provider list
    """
    client = client or httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
    sender = Sender(name=settings.sender.name, email=settings.sender.email)
    transports = [
        _build_transport(name, settings, sender, client)
        for name in settings.provider_names
    ]
    chain = TransportChain(transports, timeout_seconds=settings.provider_timeout_seconds)
    logger.info(f"Email provider chain: {chain.describe()}")
    return chain


def build_orchestrator(
    settings: QuoteDeliverySettings,
    store: QuoteStore,
    checkout_provider: Optional[CheckoutProvider] = None,
    session_store: Optional[PaymentSessionStore] = None,
    transport_chain: Optional[TransportChain] = None,
    renderer: Optional[TemplateRenderer] = None,
) -> QuoteDeliveryOrchestrator:
    provider = checkout_provider or StripeCheckoutProvider(
        secret_key=settings.stripe.secret_key,
        api_base=settings.stripe.api_base,
        timeout_seconds=settings.provider_timeout_seconds,
    )
    return QuoteDeliveryOrchestrator(
        store=store,
        document_generator=QuoteDocumentGenerator(
            business_name=settings.business_name,
            logo_path=settings.branding_logo_path,
        ),
        session_manager=PaymentSessionManager(
            provider,
            public_base_url=settings.public_base_url,
            store=session_store,
            session_ttl_hours=settings.stripe.session_ttl_hours,
        ),
        renderer=renderer or TemplateRenderer(),
        transport_chain=transport_chain or build_transport_chain(settings),
        public_base_url=settings.public_base_url,
        business_name=settings.business_name,
        template_name=settings.quote_template,
        default_deposit_fraction=settings.deposit_fraction,
        cc=settings.sender.cc_addresses,
    )


def create_app(
    settings: Optional[QuoteDeliverySettings] = None,
    store: Optional[QuoteStore] = None,
    orchestrator: Optional[QuoteDeliveryOrchestrator] = None,
) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.log_level, json_format=settings.log_json)

    if orchestrator is None:
        if store is None:
            raise ConfigurationError("A quote store is required to build the app")
        orchestrator = build_orchestrator(settings, store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Quote delivery service starting (environment={settings.environment})")
        yield
        await orchestrator.session_manager.provider.close()
        logger.info("Quote delivery service stopped")

    app = FastAPI(title="Quote Delivery API", version="0.1.0", lifespan=lifespan)

    app.dependency_overrides[quotes_router.get_deps] = lambda: quotes_router.QuoteDeliveryDeps(
        orchestrator=orchestrator,
    )
    app.include_router(quotes_router.router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
