"""
Quote delivery orchestrator.

Composes the pipeline for one send:

1. load the quote snapshot (fatal on failure)
2. generate the PDF (degrades to no attachment)
3. create or reuse the payment session (InvalidAmount is fatal,
   PaymentProviderUnavailable degrades to "contact us to pay")
4. render the quote email
5. dispatch through the transport chain
6. report a DeliveryResult carrying any degradations

The orchestrator never retries a send; resends are the caller's decision.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import List, Optional, Sequence
from urllib.parse import urlencode

from quote_delivery.currency import format_minor_units
from quote_delivery.documents import GeneratedDocument, QuoteDocumentGenerator
from quote_delivery.exceptions import (
    DocumentGenerationError,
    InvalidAmount,
    PaymentProviderUnavailable,
    QuoteDeliveryError,
    StoreUnavailable,
)
from quote_delivery.logging_config import SendLogContext, mask_email
from quote_delivery.models import (
    Attachment,
    Degradation,
    DeliveryResult,
    PaymentMode,
    PaymentSession,
    QuoteSnapshot,
    RenderedNotification,
)
from quote_delivery.payments.sessions import PaymentSessionManager, compute_payment_amount
from quote_delivery.store import QuoteStore
from quote_delivery.templates import (
    QuoteEmailVariables,
    QuoteLineVariables,
    TemplateRenderer,
)
from quote_delivery.transport.chain import TransportChain

logger = logging.getLogger(__name__)

FALLBACK_PAYMENT_INSTRUCTIONS = "Please contact us to arrange payment."
FALLBACK_GREETING_NAME = "there"
_DATE_FORMAT = "%B %d, %Y"


def _format_date(value: Optional[date]) -> str:
    return value.strftime(_DATE_FORMAT) if value else ""


class QuoteDeliveryOrchestrator:
    """Sends a quote email with its PDF and checkout link."""

    def __init__(
        self,
        store: QuoteStore,
        document_generator: QuoteDocumentGenerator,
        session_manager: PaymentSessionManager,
        renderer: TemplateRenderer,
        transport_chain: TransportChain,
        public_base_url: str,
        business_name: str,
        template_name: str = "quote",
        default_deposit_fraction: float = 0.2,
        cc: Sequence[str] = (),
    ) -> None:
        # Resolve now so a template typo fails at startup, not per send.
        renderer.require(template_name)

        self.store = store
        self.document_generator = document_generator
        self.session_manager = session_manager
        self.renderer = renderer
        self.transport_chain = transport_chain
        self.public_base_url = public_base_url.rstrip("/")
        self.business_name = business_name
        self.template_name = template_name
        self.default_deposit_fraction = default_deposit_fraction
        self.cc = tuple(cc)

    def fallback_payment_url(self, quote_id: str) -> str:
        return f"{self.public_base_url}/contact?{urlencode({'quote': quote_id})}"

    def unsubscribe_url(self, email: str) -> str:
        return f"{self.public_base_url}/unsubscribe?{urlencode({'email': email})}"

    async def _load_snapshot(self, quote_id: str) -> QuoteSnapshot:
        try:
            return await self.store.get_quote_for_send(quote_id)
        except QuoteDeliveryError:
            raise
        except Exception as e:
            raise StoreUnavailable(f"Quote store read failed: {e}", details={"quote_id": quote_id}) from e

    async def _generate_document(self, snapshot: QuoteSnapshot) -> Optional[GeneratedDocument]:
        try:
            # reportlab is CPU-bound; keep it off the event loop.
            return await asyncio.to_thread(self.document_generator.generate, snapshot)
        except DocumentGenerationError as e:
            logger.warning(f"Sending quote {snapshot.number} without PDF: {e.message}")
            return None

    async def _payment_session(
        self,
        snapshot: QuoteSnapshot,
        mode: PaymentMode,
        deposit_fraction: float,
    ) -> Optional[PaymentSession]:
        try:
            return await self.session_manager.get_or_create_session(
                quote_id=snapshot.id,
                mode=mode,
                total_minor_units=snapshot.total,
                deposit_fraction=deposit_fraction,
                customer_email=snapshot.customer.email,
                quote_number=snapshot.number,
                currency=snapshot.currency,
            )
        except PaymentProviderUnavailable as e:
            logger.warning(f"Sending quote {snapshot.number} without payment link: {e.message}")
            return None

    def build_variables(
        self,
        snapshot: QuoteSnapshot,
        mode: PaymentMode,
        amount_due: int,
        session: Optional[PaymentSession],
        document: Optional[GeneratedDocument],
    ) -> QuoteEmailVariables:
        currency = snapshot.currency
        event = snapshot.event
        return QuoteEmailVariables(
            customer_name=snapshot.customer.name.strip() or FALLBACK_GREETING_NAME,
            quote_number=snapshot.number or snapshot.id,
            business_name=self.business_name,
            total=format_minor_units(snapshot.total, currency),
            amount_due=format_minor_units(amount_due, currency),
            deposit=format_minor_units(amount_due, currency) if mode == PaymentMode.DEPOSIT else "",
            valid_until=_format_date(snapshot.valid_until),
            checkout_url=session.checkout_url if session else "",
            payment_url=session.checkout_url if session else self.fallback_payment_url(snapshot.id),
            payment_instructions="" if session else FALLBACK_PAYMENT_INSTRUCTIONS,
            unsubscribe_url=self.unsubscribe_url(snapshot.customer.email),
            attachment_note=(
                f"Your quote is attached as {document.filename}." if document else ""
            ),
            message=snapshot.notes or (
                f"Thank you for your interest in {self.business_name}. "
                "Here are the details of your quote."
            ),
            terms=snapshot.terms or "",
            service_type=(event.service_type or "") if event else "",
            event_date=_format_date(event.event_date) if event else "",
            event_location=(event.location or "") if event else "",
            line_items=tuple(
                QuoteLineVariables(
                    description=item.description,
                    quantity=str(item.quantity),
                    unit_price=format_minor_units(item.unit_price, currency),
                    line_total=format_minor_units(item.line_total, currency),
                )
                for item in snapshot.line_items
            ),
        )

    async def send_quote(self, quote_id: str, mode: PaymentMode = PaymentMode.DEPOSIT) -> DeliveryResult:
        """
        Deliver a quote to its customer.

        Returns:
            DeliveryResult; Rejected and AllProvidersFailed outcomes are
            returned, not raised

        Raises:
            QuoteNotFound: Unknown quote
            StoreUnavailable: Quote store could not be read
            InvalidAmount: Payment amount is zero or negative
        """
        mode = PaymentMode(mode)
        with SendLogContext(quote_id):
            snapshot = await self._load_snapshot(quote_id)
            degradations: List[Degradation] = []
            deposit_fraction = snapshot.deposit_fraction or self.default_deposit_fraction

            document = await self._generate_document(snapshot)
            if document is None:
                degradations.append(Degradation.DOCUMENT)

            try:
                amount_due = compute_payment_amount(snapshot.total, mode, deposit_fraction)
            except InvalidAmount as e:
                logger.error(f"Aborting send of quote {snapshot.number}: {e.message}")
                raise
            session = await self._payment_session(snapshot, mode, deposit_fraction)
            if session is None:
                degradations.append(Degradation.PAYMENT)
            elif session.amount != amount_due:
                # A reused session charges what it was created for.
                logger.warning(
                    f"Quote {snapshot.number} amount changed to {amount_due} since session "
                    f"{session.session_id} was created for {session.amount}; keeping the session amount"
                )
                amount_due = session.amount

            variables = self.build_variables(snapshot, mode, amount_due, session, document)
            rendered = self.renderer.render(self.template_name, variables.to_variables())
            attachments = ()
            if document is not None:
                attachments = (
                    Attachment(
                        filename=document.filename,
                        content=document.content,
                        mime_type=document.mime_type,
                    ),
                )
            notification = RenderedNotification(
                subject=rendered.subject,
                html=rendered.html,
                text=rendered.text,
                attachments=attachments,
                cc=self.cc,
            )

            result = await self.transport_chain.send(notification, snapshot.customer.email)
            result.degradations = degradations
            result.payment_amount = amount_due
            if session is not None:
                result.checkout_url = session.checkout_url
                result.session_id = session.session_id

            logger.info(
                f"Quote {snapshot.number} send finished status={result.final_status.value} "
                f"recipient={mask_email(snapshot.customer.email)} "
                f"degradations={[d.value for d in degradations]}"
            )
            return result
