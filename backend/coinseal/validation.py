from __future__ import annotations

import re
from typing import Any

from .errors import InvalidAmountError, ValidationError
from .time_utils import parse_iso_datetime

# Deliberately loose: exact deliverability is an external concern
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Largest single coin movement accepted; keeps balances inside a 32-bit column
MAX_COIN_AMOUNT = 1_000_000_000


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for request input.

    Accepts ints and plain digit strings. Rejects bools, floats, decimals
    ("12.5") and scientific notation ("1e3").
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_amount(value: Any) -> int:
    """A coin amount: a strictly positive integer, no bools or floats."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError("Amount must be a positive integer")
    if value <= 0:
        raise InvalidAmountError("Amount must be a positive integer")
    if value > MAX_COIN_AMOUNT:
        raise InvalidAmountError(f"Amount must not exceed {MAX_COIN_AMOUNT}")
    return value


def parse_amount(value: Any) -> int:
    """Request-boundary variant of require_amount that accepts digit strings."""
    if value is None:
        raise InvalidAmountError("Amount is required")
    try:
        return require_amount(coerce_int(value, "amount"))
    except ValidationError as exc:
        raise InvalidAmountError(exc.message)


def clean_str(value: Any, field: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ValidationError(f"{field} must be a string")
    cleaned = str(value).strip()
    if max_length is not None and len(cleaned) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return cleaned


def clean_email(value: Any) -> str:
    email = clean_str(value, "email", required=True, max_length=255)
    if not _EMAIL_RE.match(email):
        raise ValidationError("email must be a valid email address")
    return email.lower()


def optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return coerce_int(value, field)


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_date(value: Any, field: str, *, end_of_day: bool = False):
    """Query-string date/datetime filter. Date-only upper bounds cover the whole day."""
    if value is None or value == "":
        return None
    try:
        return parse_iso_datetime(str(value), end_of_day=end_of_day)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime")
