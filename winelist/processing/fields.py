"""
Field normalization helpers.

Airtable returns the same logical field in several shapes: scalars, arrays
(multi-select and linked records) and wrapped ``{"value": ...}`` objects
produced by computed and AI fields. Two reducers are provided:

    - ``normalize_sort_value``: one comparable string (first element of a list)
    - ``extract_value``: display string preserving every list element
"""

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

_PRICE_NOISE = re.compile(r"[^\d.]")
_LEADING_NUMBER = re.compile(r"^\d*\.?\d+|^\d+\.?")
_CENTS = Decimal("0.01")


def normalize_sort_value(value: Any) -> str:
    """Reduce a field value to a single trimmed string for comparisons."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return normalize_sort_value(value[0]) if value else ""
    if isinstance(value, dict):
        return normalize_sort_value(value["value"]) if "value" in value else ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip()


def extract_value(value: Any) -> str:
    """
    Reduce a field value to a display string.

    Lists are joined with ``", "`` after unwrapping each element, skipping
    elements that unwrap to an empty string.
    """
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        parts = [extract_value(item) for item in value]
        return ", ".join(part for part in parts if part)
    if isinstance(value, dict):
        return extract_value(value["value"]) if "value" in value else ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip()


def extract_link_id(value: Any) -> Optional[str]:
    """Return the first linked record id of a link field, or None."""
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if isinstance(value, str):
        return value.strip() or None
    return None


def is_blank(value: Any) -> bool:
    """True for missing values, empty strings and empty lists."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return extract_value(value) == ""
    return False


def _round_cents(number: str) -> Optional[float]:
    try:
        return float(Decimal(number).quantize(_CENTS, rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return None


def parse_price(value: Any) -> Optional[float]:
    """
    Parse a price into euros rounded to 2 decimals.

    Strings are read leniently: decimal commas become dots, every other
    non-digit character is dropped and the leading number is taken, so
    ``"12,50 €"`` parses as ``12.5``. Returns None when nothing numeric is left.

    Examples:
        >>> parse_price("12,50 €")
        12.5
        >>> parse_price("abc") is None
        True
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _round_cents(str(value)) if math.isfinite(value) else None
    text = extract_value(value)
    if not text:
        return None
    cleaned = _PRICE_NOISE.sub("", text.replace(",", "."))
    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return None
    return _round_cents(match.group(0))
