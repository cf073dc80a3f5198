"""Deterministic transaction identity for duplicate detection"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

from debt_reconciler.utils.amount_utils import from_minor_units, to_minor_units
from debt_reconciler.utils.date_utils import format_date, parse_date

DELIMITER = "|"

Amount = Union[Decimal, float, int, str, None]


def normalize_date(value: Any) -> str:
    """YYYY-MM-DD for anything parse_date understands, otherwise the trimmed text"""
    parsed = parse_date(value)
    if parsed is not None:
        return format_date(parsed)
    return "" if value is None else str(value).strip()


def normalize_customer_id(value: Any) -> str:
    """
    Trim the id and drop the float suffix numeric cells carry.

    123456789.0 -> "123456789", "  ACME Ltd " -> "ACME Ltd"
    """
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    text = str(value).strip().replace(DELIMITER, "/")
    if text.endswith(".0") and text[:-2].isdigit():
        return text[:-2]
    return text


def build_fingerprint(
    payment_date: Any,
    amount: Amount,
    customer_id: Any,
    balance_after: Amount,
    include_balance: bool = True,
) -> str:
    """
    Build the identity string date|amountCents|customerId|balanceCents.

    Pure and total: missing amount or balance count as zero, monetary values
    are rounded half-up to cents before stringifying.

    The balance after the transaction is the only field that tells apart two
    same-day, same-amount payments by one customer, so it is part of the
    canonical form. include_balance=False produces the older three-part
    date|amountCents|customerId scheme.

    Example:
        build_fingerprint("2025-05-13", Decimal("1410.00"), "405123456", Decimal("2322.46"))
        -> "2025-05-13|141000|405123456|232246"
    """
    parts = [
        normalize_date(payment_date),
        str(to_minor_units(amount)),
        normalize_customer_id(customer_id),
    ]
    if include_balance:
        parts.append(str(to_minor_units(balance_after)))
    return DELIMITER.join(parts)


def fingerprint_from_cents(
    payment_date: date,
    amount_cents: int,
    customer_id: str,
    balance_after_cents: int,
    include_balance: bool = True,
) -> str:
    """Same identity rule for values already stored in minor units"""
    return build_fingerprint(
        payment_date,
        from_minor_units(amount_cents),
        customer_id,
        from_minor_units(balance_after_cents),
        include_balance=include_balance,
    )


def extract_date(fingerprint: Optional[str]) -> Optional[str]:
    if not fingerprint or DELIMITER not in fingerprint:
        return None
    return fingerprint.split(DELIMITER)[0]


def extract_customer_id(fingerprint: Optional[str]) -> Optional[str]:
    if not fingerprint or DELIMITER not in fingerprint:
        return None
    parts = fingerprint.split(DELIMITER)
    return parts[2] if len(parts) > 2 else None
