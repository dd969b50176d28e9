"""Display helpers for processor amounts."""
from __future__ import annotations

from typing import Dict

CURRENCY_SYMBOLS: Dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}


def format_price(amount: int, currency: str) -> str:
    """Render an amount in minor units (cents) as a display string.

    Known currencies get their symbol (``$19.99``); anything else is prefixed
    with the upper-cased ISO code and a space (``JPY 5.00``).
    """

    code = (currency or "").upper()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    return f"{symbol}{amount / 100:,.2f}"


__all__ = ["CURRENCY_SYMBOLS", "format_price"]
