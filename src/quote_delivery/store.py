"""Read-only quote source consumed by the orchestrator."""
from __future__ import annotations

from typing import Dict, Iterable, Optional, Protocol

from quote_delivery.exceptions import QuoteNotFound
from quote_delivery.models import QuoteSnapshot


class QuoteStore(Protocol):
    """Projection of the quote/customer records needed for one send.

    Implementations raise QuoteNotFound for unknown IDs and StoreUnavailable
    when the backing store cannot be reached.
    """

    async def get_quote_for_send(self, quote_id: str) -> QuoteSnapshot:
        ...


class InMemoryQuoteStore:
    """Dictionary-backed store for development and testing."""

    def __init__(self, quotes: Optional[Iterable[QuoteSnapshot]] = None) -> None:
        self._quotes: Dict[str, QuoteSnapshot] = {}
        for quote in quotes or ():
            self.add(quote)

    def add(self, quote: QuoteSnapshot) -> None:
        self._quotes[quote.id] = quote

    async def get_quote_for_send(self, quote_id: str) -> QuoteSnapshot:
        quote = self._quotes.get(quote_id)
        if quote is None:
            raise QuoteNotFound(quote_id)
        return quote
