# Overview: Strict coercion helpers for JSON request payloads.

from __future__ import annotations

from typing import Any

from .services.errors import ValidationError


# Maximum amount: $9,999,999.99 (999,999,999 cents)
# Prevents database overflow issues and nonsensical payments
MAX_AMOUNT_CENTS = 999_999_999


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings; rejects bools, floats, decimals and
    scientific notation.
    """
    # bool is a subclass of int
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def require_int(data: dict, key: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    if data.get(key) is None:
        raise ValidationError(f"{key} required")
    value = coerce_int(key, data[key])
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} must be <= {maximum}")
    return value


def optional_int(data: dict, key: str, *, minimum: int | None = None) -> int | None:
    if data.get(key) is None:
        return None
    return require_int(data, key, minimum=minimum)


def optional_number(data: dict, key: str) -> float | None:
    """Positive int or float (e.g. olderThanHours=0.5)."""
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be a number")
    if value <= 0:
        raise ValidationError(f"{key} must be positive")
    return value


def coerce_bool(key: str, value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
        return False
    raise ValidationError(f"{key} must be a boolean")


def optional_str(data: dict, key: str, *, max_length: int | None = None) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters")
    return value or None


def require_amount_cents(data: dict, key: str) -> int:
    return require_int(data, key, maximum=MAX_AMOUNT_CENTS)
