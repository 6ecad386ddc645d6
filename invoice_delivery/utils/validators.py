"""Validation utilities for invoice and recipient data."""

import re

from invoice_delivery.core.errors import ValidationError

_PHONE_SEPARATORS = re.compile(r"[\s().\-/]")


def validate_email(email: str) -> bool:
    """Validate email address format."""
    if not email or not isinstance(email, str):
        return False

    pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    return bool(re.match(pattern, email))


def validate_invoice_number(invoice_number: str) -> bool:
    """Validate invoice number format."""
    if not invoice_number or not isinstance(invoice_number, str):
        return False
    return 1 <= len(invoice_number.strip()) <= 50


def normalize_phone_number(phone: str, default_country_code: str = "1") -> str:
    """Normalize a phone number to E.164 (``+<country><subscriber>``).

    Accepts international input (``+44 20 7946 0958``, ``0044...``) and national input, which is
    prefixed with ``default_country_code`` after dropping a single trunk ``0``. North American
    numbers are checked against the NANP area/exchange rules.

    Raises:
        ValidationError: If the number cannot be normalized.
    """
    if not phone or not isinstance(phone, str):
        raise ValidationError("Phone number is empty", code="invalid_phone")

    compact = _PHONE_SEPARATORS.sub("", phone.strip())
    if compact.startswith("+"):
        digits = compact[1:]
    elif compact.startswith("00"):
        digits = compact[2:]
    else:
        digits = None

    if digits is not None:
        if not digits.isdigit():
            raise ValidationError(f"Invalid phone number: {phone}", code="invalid_phone")
    else:
        if not compact.isdigit():
            raise ValidationError(f"Invalid phone number: {phone}", code="invalid_phone")
        if default_country_code == "1" and len(compact) == 11 and compact.startswith("1"):
            digits = compact
        else:
            national = compact[1:] if compact.startswith("0") else compact
            digits = default_country_code + national

    if digits.startswith("0") or not 8 <= len(digits) <= 15:
        raise ValidationError(f"Invalid phone number: {phone}", code="invalid_phone")

    if digits.startswith("1") and not _is_valid_nanp(digits[1:]):
        raise ValidationError(f"Invalid phone number: {phone}", code="invalid_phone")

    return f"+{digits}"


def _is_valid_nanp(subscriber: str) -> bool:
    """NANP: 10 digits, area code and exchange both start with 2-9."""
    return len(subscriber) == 10 and subscriber[0] in "23456789" and subscriber[3] in "23456789"
