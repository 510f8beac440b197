"""
Minor-unit currency formatting.

Amounts travel through the pipeline as integer minor units (cents). They are
turned into display strings only here, right before rendering, so nothing
downstream ever divides or rounds money itself.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    symbol: str
    decimal_places: int = 2


CURRENCIES: Dict[str, CurrencyInfo] = {
    "USD": CurrencyInfo(code="USD", symbol="$"),
    "CAD": CurrencyInfo(code="CAD", symbol="C$"),
    "EUR": CurrencyInfo(code="EUR", symbol="€"),
    "GBP": CurrencyInfo(code="GBP", symbol="£"),
    "AUD": CurrencyInfo(code="AUD", symbol="A$"),
    "MXN": CurrencyInfo(code="MXN", symbol="$"),
    "JPY": CurrencyInfo(code="JPY", symbol="¥", decimal_places=0),
}


def get_currency(code: str) -> CurrencyInfo:
    """Look up a currency, falling back to a 2-decimal code-suffixed format."""
    upper = code.upper()
    return CURRENCIES.get(upper, CurrencyInfo(code=upper, symbol="", decimal_places=2))


def minor_units_to_decimal(amount: int, currency: str = "USD") -> Decimal:
    info = get_currency(currency)
    return Decimal(amount).scaleb(-info.decimal_places)


def format_minor_units(amount: int, currency: str = "USD") -> str:
    """Format integer minor units for display, e.g. 80000 USD -> "$800.00"."""
    info = get_currency(currency)
    value = minor_units_to_decimal(amount, currency)
    sign = "-" if value < 0 else ""
    if info.decimal_places == 0:
        formatted = f"{abs(int(value)):,}"
    else:
        formatted = f"{abs(value):,.{info.decimal_places}f}"

    if not info.symbol:
        return f"{sign}{formatted} {info.code}"
    return f"{sign}{info.symbol}{formatted}"
