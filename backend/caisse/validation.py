from __future__ import annotations

from typing import Any, Iterable


# Largest amount accepted for a single field: 9,999,999.99 in a 2-decimal currency.
# Money columns are BIGINT, so a day of ledger sums stays in range.
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class LocationNotFoundError(ValidationError):
    """Referenced location does not exist."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., second open session on a location)."""


class InvalidStateError(ValueError):
    """Operation attempted against a session in the wrong lifecycle state."""


class SessionNotFoundError(InvalidStateError):
    """Referenced session does not exist."""


class StorageUnavailableError(RuntimeError):
    """The persistence backend failed; the current call did not take effect."""


def parse_cents(value: Any, field: str) -> int:
    """
    Coerce an incoming money amount to integer minor units.

    Strict: rejects floats, decimals, booleans and scientific notation so that
    no binary floating-point value ever reaches the ledger.
    """
    if value is None:
        raise ValidationError(f"{field} is required")

    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        cents = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer amount in minor units")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped or "," in stripped:
            raise ValidationError(f"{field} must be an integer amount in minor units (no decimals)")
        try:
            cents = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer amount in minor units")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer amount in minor units, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer amount in minor units")

    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS}")
    return cents


def parse_non_negative_cents(value: Any, field: str) -> int:
    cents = parse_cents(value, field)
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    return cents


def parse_positive_cents(value: Any, field: str) -> int:
    cents = parse_cents(value, field)
    if cents <= 0:
        raise ValidationError(f"{field} must be positive")
    return cents


def clean_text(value: Any, *, max_length: int | None = None, field: str = "value") -> str | None:
    """Strip free text; empty strings become None."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def require_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    text = clean_text(value, max_length=max_length, field=field)
    if text is None:
        raise ValidationError(f"{field} is required")
    return text


def require_choice(value: Any, choices: Iterable[str], field: str) -> str:
    """Normalize an enumerated value; matching is case-insensitive."""
    allowed = tuple(choices)
    if value is None:
        raise ValidationError(f"{field} is required")
    raw = str(value).strip()
    for choice in allowed:
        if raw.lower() == choice.lower():
            return choice
    raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
