"""
Payment session management.

Guarantees at most one live checkout session per (quote_id, mode):

1. The idempotency key is a deterministic hash of the pair.
2. Check-and-create runs under a per-key asyncio.Lock, so concurrent sends
   for the same quote serialize while unrelated quotes run in parallel.
3. The key, extended with an expiry generation and a creation anchor, is
   forwarded to the provider. A creation retried after cancellation or a
   timeout resends the same key with identical parameters, so the provider
   deduplicates it remotely as well.

An expired session is replaced under the next generation number.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, Optional, Tuple
from urllib.parse import urlencode

from quote_delivery.exceptions import InvalidAmount
from quote_delivery.models import (
    DEFAULT_SESSION_TTL_HOURS,
    PaymentMode,
    PaymentSession,
    utcnow,
)
from quote_delivery.payments.base import (
    CheckoutProvider,
    CheckoutSessionRequest,
    PaymentStatus,
)

logger = logging.getLogger(__name__)

# Stripe refuses an expires_at closer than 30 minutes away.
MIN_REMOTE_SESSION_LIFETIME = timedelta(minutes=30)


def session_idempotency_key(quote_id: str, mode: PaymentMode) -> str:
    """Deterministic key for the (quote_id, mode) pair."""
    raw = f"quote:{quote_id}:{PaymentMode(mode).value}"
    return hashlib.sha256(raw.encode()).hexdigest()


def compute_payment_amount(
    total_minor_units: int,
    mode: PaymentMode,
    deposit_fraction: float,
) -> int:
    """
    Amount to collect in minor units.

    Deposit amounts are rounded half-up and clamped to [0, total].

    Raises:
        InvalidAmount: If the total is not positive, the fraction is outside
            (0, 1], or the deposit rounds down to zero
    """
    if total_minor_units <= 0:
        raise InvalidAmount(
            f"Quote total must be positive, got {total_minor_units}",
            details={"total": total_minor_units},
        )

    if PaymentMode(mode) == PaymentMode.FULL:
        return total_minor_units

    try:
        fraction = Decimal(str(deposit_fraction))
    except InvalidOperation as e:
        raise InvalidAmount(f"Invalid deposit fraction: {deposit_fraction}") from e
    if not Decimal("0") < fraction <= Decimal("1"):
        raise InvalidAmount(
            f"Deposit fraction must be in (0, 1], got {deposit_fraction}",
            details={"deposit_fraction": deposit_fraction},
        )

    amount = int((Decimal(total_minor_units) * fraction).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    amount = min(max(amount, 0), total_minor_units)
    if amount == 0:
        raise InvalidAmount(
            f"Deposit for total {total_minor_units} rounds to zero",
            details={"total": total_minor_units, "deposit_fraction": deposit_fraction},
        )
    return amount


class PaymentSessionStore(ABC):
    """Abstract interface for payment session storage, keyed by idempotency key."""

    @abstractmethod
    async def get(self, idempotency_key: str) -> Optional[PaymentSession]:
        """Return the latest session for the key, expired or not."""
        pass

    @abstractmethod
    async def save(self, session: PaymentSession) -> None:
        """Store the session as the latest one for its key."""
        pass


class InMemoryPaymentSessionStore(PaymentSessionStore):
    """
    In-memory session store for development and testing.

    Note: Sessions are lost on restart and not shared between processes.
    Use a persistent store with a unique constraint on the key in production.
    """

    def __init__(self):
        self._sessions: Dict[str, PaymentSession] = {}

    async def get(self, idempotency_key: str) -> Optional[PaymentSession]:
        return self._sessions.get(idempotency_key)

    async def save(self, session: PaymentSession) -> None:
        self._sessions[session.idempotency_key] = session


class PaymentSessionManager:
    """
    Creates or reuses checkout sessions for (quote, mode) pairs.

    Usage:
        manager = PaymentSessionManager(provider, public_base_url="https://example.com")
        session = await manager.get_or_create_session(
            quote_id="q_1", mode=PaymentMode.DEPOSIT,
            total_minor_units=80000, deposit_fraction=0.2,
            customer_email="jane@example.com",
        )
    """

    def __init__(
        self,
        provider: CheckoutProvider,
        public_base_url: str,
        store: Optional[PaymentSessionStore] = None,
        session_ttl_hours: int = DEFAULT_SESSION_TTL_HOURS,
    ):
        self.provider = provider
        self.public_base_url = public_base_url.rstrip("/")
        self.store = store or InMemoryPaymentSessionStore()
        self.session_ttl = timedelta(hours=session_ttl_hours)
        self._locks: Dict[str, asyncio.Lock] = {}
        # (anchor, amount) per key and generation, kept until the session is
        # stored so a retried creation resends byte-identical parameters.
        self._pending: Dict[str, Tuple[datetime, int]] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks.setdefault(key, asyncio.Lock())
        return lock

    def _creation_anchor(self, pending_key: str, amount: int, now: datetime) -> datetime:
        """
        Creation time to stamp on a remote request.

        A retry reuses the previous anchor, and with it the remote idempotency
        key and expires_at, unless the amount changed or the anchored expiry
        would fall inside Stripe's minimum session lifetime.
        """
        pending = self._pending.get(pending_key)
        if pending is not None:
            anchor, pending_amount = pending
            if pending_amount == amount and anchor + self.session_ttl - now >= MIN_REMOTE_SESSION_LIFETIME:
                return anchor
        self._pending[pending_key] = (now, amount)
        return now

    def success_url(self, quote_id: str) -> str:
        # Stripe substitutes {CHECKOUT_SESSION_ID}; keep the braces unencoded.
        return (
            f"{self.public_base_url}/quotes/success?{urlencode({'quoteId': quote_id})}"
            "&session_id={CHECKOUT_SESSION_ID}"
        )

    def cancel_url(self, quote_id: str) -> str:
        return f"{self.public_base_url}/quotes/cancel?{urlencode({'quoteId': quote_id})}"

    async def get_or_create_session(
        self,
        quote_id: str,
        mode: PaymentMode,
        total_minor_units: int,
        deposit_fraction: float,
        customer_email: str,
        quote_number: Optional[str] = None,
        currency: str = "USD",
    ) -> PaymentSession:
        """
        Return the live session for (quote_id, mode), creating one if needed.

        Raises:
            InvalidAmount: Before any remote call, if the amount is unusable
            PaymentProviderUnavailable: If the provider cannot create a session
        """
        mode = PaymentMode(mode)
        amount = compute_payment_amount(total_minor_units, mode, deposit_fraction)
        key = session_idempotency_key(quote_id, mode)

        async with self._lock_for(key):
            existing = await self.store.get(key)
            now = utcnow()
            if existing is not None and not existing.is_expired(now):
                logger.info(
                    f"Reusing payment session {existing.session_id} quote={quote_id} mode={mode.value}"
                )
                return existing

            generation = existing.generation + 1 if existing is not None else 0
            if existing is not None:
                logger.info(
                    f"Payment session {existing.session_id} expired, creating generation {generation}"
                )

            pending_key = f"{key}:{generation}"
            anchor = self._creation_anchor(pending_key, amount, now)
            remote_key = f"{pending_key}:{int(anchor.timestamp())}"
            request = CheckoutSessionRequest(
                quote_id=quote_id,
                quote_number=quote_number or quote_id,
                mode=mode,
                amount=amount,
                currency=currency,
                customer_email=customer_email,
                idempotency_key=remote_key,
                success_url=self.success_url(quote_id),
                cancel_url=self.cancel_url(quote_id),
                expires_at=anchor + self.session_ttl,
                generation=generation,
            )
            created = await self.provider.create_checkout_session(request)

            # Index by the stable pair key; the remote key carries the generation.
            session = PaymentSession(
                session_id=created.session_id,
                checkout_url=created.checkout_url,
                mode=mode,
                amount=created.amount,
                quote_id=quote_id,
                created_at=created.created_at,
                expires_at=created.expires_at,
                currency=created.currency,
                idempotency_key=key,
                generation=generation,
            )
            await self.store.save(session)
            self._pending.pop(pending_key, None)
            return session

    async def get_payment_status(self, quote_id: str, mode: PaymentMode) -> PaymentStatus:
        """Payment state of the latest session for (quote_id, mode)."""
        session = await self.store.get(session_idempotency_key(quote_id, mode))
        if session is None:
            return PaymentStatus.UNKNOWN
        if session.is_expired():
            return PaymentStatus.EXPIRED
        return await self.provider.get_payment_status(session.session_id)
