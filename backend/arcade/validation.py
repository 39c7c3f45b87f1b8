from __future__ import annotations

from decimal import Decimal
from typing import Any


# Maximum single amount: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical entries
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate store name)."""


def require_fields(data: dict | None, *names: str) -> dict:
    """Ensure a JSON body is present and carries every named field."""
    if not isinstance(data, dict):
        raise ValidationError("JSON body required")
    missing = [name for name in names if data.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")
    return data


def coerce_cents(value: Any, field: str, *, allow_negative: bool = True) -> int:
    """
    Coerce an amount in cents to int.

    Integers - strict validation to reject floats with fractions, bools and
    scientific notation. Integral Decimals/floats are accepted (JSON clients
    often send 1500.0).
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer amount in cents")

    if isinstance(value, int):
        cents = value
    elif isinstance(value, (float, Decimal)):
        if value != value or value in (float("inf"), float("-inf")):
            raise ValidationError(f"{field} must be a finite number")
        if int(value) != value:
            raise ValidationError(f"{field} must be whole cents (no fractional cents)")
        cents = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer amount in cents")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            cents = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer amount in cents")
    else:
        raise ValidationError(f"{field} must be an integer amount in cents")

    if not allow_negative and cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS} cents")
    return cents


def clean_str(value: Any, *, max_length: int | None = None, field: str = "value") -> str | None:
    """Trim a free-text field; empty strings collapse to None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    stripped = value.strip()
    if not stripped:
        return None
    if max_length is not None and len(stripped) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return stripped
