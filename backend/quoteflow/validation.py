"""
Input validation for lifecycle operations.

Each parser returns the normalized value or raises ValidationError
naming the offending field. Nothing here touches the store.
"""

import math
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from .errors import ValidationError
from .types import Decision

DEFAULT_CURRENCIES = ("GBP", "USD", "EUR")

_CENT = Decimal("0.01")


def require_text(value: Any, field: str, label: Optional[str] = None) -> str:
    """Strip and require a non-empty string."""
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise ValidationError(f"{label or field} is required", field=field)
    return text


def optional_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_email(value: Any, field: str = "contact_email") -> str:
    email = require_text(value, field, "Contact email")
    local, _, domain = email.partition("@")
    if not local or "." not in domain:
        raise ValidationError(f"'{email}' is not a valid email address", field=field)
    return email


def parse_amount(value: Any) -> Decimal:
    """Parse a quote amount: finite, positive, rounded to cents."""
    if isinstance(value, bool) or value is None:
        raise ValidationError("Quote amount is required", field="amount")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError("Quote amount must be a finite number", field="amount")

    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"'{value}' is not a valid amount", field="amount") from None

    if not amount.is_finite():
        raise ValidationError("Quote amount must be a finite number", field="amount")

    amount = amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ValidationError("Quote amount must be greater than zero", field="amount")
    return amount


def parse_currency(value: Any, supported: Iterable[str] = DEFAULT_CURRENCIES) -> str:
    code = value.strip().upper() if isinstance(value, str) else ""
    allowed = {c.upper() for c in supported}
    if len(code) != 3 or not code.isalpha():
        raise ValidationError(f"'{value}' is not a 3-letter currency code", field="currency")
    if code not in allowed:
        raise ValidationError(
            f"Currency {code} is not supported (use one of {', '.join(sorted(allowed))})",
            field="currency",
        )
    return code


def parse_event_date(value: Any, today: date) -> date:
    """Event date must not be in the past at submission time."""
    if value is None or value == "":
        raise ValidationError("Event date is required", field="event_date")

    if isinstance(value, datetime):
        event_date = value.date()
    elif isinstance(value, date):
        event_date = value
    else:
        try:
            event_date = date.fromisoformat(str(value).strip())
        except ValueError:
            raise ValidationError(f"'{value}' is not a valid date", field="event_date") from None

    if event_date < today:
        raise ValidationError("Event date cannot be in the past", field="event_date")
    return event_date


def parse_guests(value: Any) -> Optional[int]:
    """Expected guests: optional, non-negative integer."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationError("Expected guests must be a whole number", field="expected_guests")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError("Expected guests must be a whole number", field="expected_guests")

    try:
        guests = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{value}' is not a whole number", field="expected_guests") from None

    if guests < 0:
        raise ValidationError("Expected guests cannot be negative", field="expected_guests")
    return guests


def parse_decision(value: Any) -> Decision:
    if isinstance(value, Decision):
        return value
    try:
        return Decision(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Decision must be 'accept' or 'decline', got '{value}'", field="decision"
        ) from None
