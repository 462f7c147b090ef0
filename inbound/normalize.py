"""Boundary normalization for identifiers, codes and counts.

Every value coming from a request or a scanner goes through one of these
before it is compared, stored or sent.
"""
from typing import Any


def to_text(value: Any) -> str:
    """Trimmed string; ``None`` becomes an empty string."""
    if value is None:
        return ""
    return str(value).strip()


def to_code(value: Any) -> str:
    """SKU and serial numbers: trimmed and upper-cased."""
    return to_text(value).upper()


def to_int(value: Any, fallback: int = 0) -> int:
    """Floor a numeric value to int, falling back on anything non-numeric."""
    if value is None or isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if number != number or number in (float("inf"), float("-inf")):
        return fallback
    return int(number // 1)


def to_quantity(value: Any) -> int:
    """Non-negative integer quantity."""
    return max(0, to_int(value, 0))
