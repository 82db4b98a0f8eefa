from __future__ import annotations

import math
import re
from typing import Optional

from models import InvoiceInput

REQUIRED_TEXT_FIELDS = (
    "business_name",
    "invoice_number",
    "client_name",
    "service_description",
)
REQUIRED_DATE_FIELDS = ("invoice_date", "due_date")
NUMERIC_MINIMUMS: dict[str, float] = {
    "quantity": 0.0,
    "rate": 0.0,
    "tax_rate": 0.0,
}
REQUIRED_FIELDS = REQUIRED_TEXT_FIELDS + REQUIRED_DATE_FIELDS + tuple(NUMERIC_MINIMUMS)

MSG_REQUIRED = "This field is required"
MSG_NUMBER = "Enter a valid number"
MSG_DUE_DATE = "Due date must be after invoice date"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_field(inv: InvoiceInput, name: str) -> Optional[str]:
    """Returns the failure reason for one field, or None if it passes."""
    value = getattr(inv, name)

    if name in REQUIRED_TEXT_FIELDS:
        if not (value or "").strip():
            return MSG_REQUIRED
        return None

    if name in NUMERIC_MINIMUMS:
        minimum = NUMERIC_MINIMUMS[name]
        if value is None or math.isnan(value):
            return MSG_NUMBER
        if value < minimum:
            return f"Must be at least {minimum:g}"
        return None

    if name in REQUIRED_DATE_FIELDS:
        if value is None:
            return MSG_REQUIRED
        if name == "due_date" and inv.invoice_date is not None and value < inv.invoice_date:
            return MSG_DUE_DATE
        return None

    return None


def validate_invoice(inv: InvoiceInput) -> dict[str, str]:
    """
    Checks every required field (never stops at the first failure) and
    returns {field_name: reason}. An empty dict means the invoice is valid.
    """
    failures: dict[str, str] = {}
    for name in REQUIRED_FIELDS:
        reason = validate_field(inv, name)
        if reason:
            failures[name] = reason
    return failures


def is_valid(inv: InvoiceInput) -> bool:
    return not validate_invoice(inv)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))
