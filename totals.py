from __future__ import annotations

import math
from dataclasses import dataclass


# symbol -> (label shown in the currency picker, prefix used in the PDF)
# Helvetica has no rupee glyph, so the PDF falls back to "Rs. ".
CURRENCIES: dict[str, tuple[str, str]] = {
    "$": ("USD ($)", "$"),
    "€": ("EUR (€)", "€"),
    "£": ("GBP (£)", "£"),
    "¥": ("JPY (¥)", "¥"),
    "₹": ("INR (₹)", "Rs. "),
    "C$": ("CAD (C$)", "C$"),
    "A$": ("AUD (A$)", "A$"),
}


@dataclass(frozen=True)
class Totals:
    subtotal: float
    tax: float
    total: float


def calculate_totals(quantity: float, rate: float, tax_rate: float) -> Totals:
    """
    subtotal = quantity * rate, tax = subtotal * tax_rate / 100, total = subtotal + tax.

    No validation and no rounding: NaN or inf inputs come straight back out.
    Rounding happens only in format_currency.
    """
    subtotal = quantity * rate
    tax = subtotal * tax_rate / 100
    return Totals(subtotal=subtotal, tax=tax, total=subtotal + tax)


def currency_prefix(currency: str) -> str:
    entry = CURRENCIES.get(currency)
    return entry[1] if entry else (currency or "")


def _amount_text(x: float) -> str:
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "Infinity" if x > 0 else "-Infinity"
    return f"{x:,.2f}"


def format_currency(amount, currency: str = "$") -> str:
    try:
        x = float(amount)
    except (TypeError, ValueError):
        x = math.nan
    text = _amount_text(x)
    if text.startswith("-"):
        return f"-{currency_prefix(currency)}{text[1:]}"
    return f"{currency_prefix(currency)}{text}"


def number_text(x: float) -> str:
    """Plain number text: 3.0 -> "3", 8.5 -> "8.5", NaN -> "NaN"."""
    if math.isnan(x) or math.isinf(x):
        return _amount_text(x)
    if float(x).is_integer():
        return str(int(x))
    return repr(float(x))
