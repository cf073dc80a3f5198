"""Monetary parsing and minor-unit conversion"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

_NUMERIC_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")
_WHITESPACE = re.compile(r"[\s\u00A0\u202F\u2009]+")
_CENT = Decimal("0.01")


def round_money(amount: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up"""
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def _normalize_separators(text: str) -> str:
    """
    Turn locale-formatted numbers into plain dotted decimals.

    1,234.56 -> 1234.56     1.234,56 -> 1234.56
    1234,56  -> 1234.56     1,234,567 -> 1234567
    """
    has_comma = "," in text
    has_dot = "." in text

    if has_comma and has_dot:
        # Whichever separator comes last is the decimal point
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")

    if has_comma:
        if text.count(",") > 1:
            return text.replace(",", "")
        return text.replace(",", ".")

    return text


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse a cell value into a 2-decimal amount.

    Handles numeric cells, thousands separators, decimal commas, non-breaking
    spaces and currency suffixes. Returns None for blank or unparsable input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return round_money(value)
    if isinstance(value, int):
        return round_money(Decimal(value))
    if isinstance(value, float):
        return round_money(Decimal(repr(value)))

    text = _WHITESPACE.sub("", str(value)).replace("\u066C", ",")
    if not text:
        return None

    match = _NUMERIC_PATTERN.search(_normalize_separators(text))
    if not match:
        return None

    try:
        return round_money(Decimal(match.group()))
    except InvalidOperation:
        return None


def to_minor_units(value: Any) -> int:
    """Amount in major units -> integer cents (half-up). Missing values count as zero."""
    if value is None:
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value * 100
    amount = parse_amount(value)
    if amount is None:
        return 0
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(cents: int) -> Decimal:
    """Integer cents -> 2-decimal amount"""
    return round_money(Decimal(cents) / 100)


def is_positive(amount: Optional[Decimal]) -> bool:
    return amount is not None and amount > 0
