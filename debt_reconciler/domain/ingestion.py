"""Row parsing and classification for spreadsheet ingestion"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Optional, Set

from debt_reconciler.config import ReconciliationConfig
from debt_reconciler.domain.exceptions import InvalidRowError
from debt_reconciler.domain.fingerprint import build_fingerprint, normalize_customer_id
from debt_reconciler.domain.models import RowStatus, TransactionDetail
from debt_reconciler.utils.amount_utils import is_positive, parse_amount, to_minor_units
from debt_reconciler.utils.date_utils import format_date, is_after_cutoff, parse_date
from debt_reconciler.utils.tin import looks_like_tin

logger = logging.getLogger(__name__)


@dataclass
class RawRow:
    """Unparsed cell values of one data row"""

    row_index: int  # spreadsheet row number, header is row 1
    date: Any
    amount: Any
    customer_id: Any
    balance: Any = None
    description: Optional[str] = None


@dataclass
class ParsedRow:
    """A row whose cells all parsed"""

    row_index: int
    payment_date: date
    amount: Decimal
    balance: Decimal
    customer_id: str
    description: str
    needs_name_resolution: bool
    fingerprint: str = ""
    customer_name: Optional[str] = None

    @property
    def amount_cents(self) -> int:
        return to_minor_units(self.amount)

    @property
    def balance_cents(self) -> int:
        return to_minor_units(self.balance)


@dataclass
class ClassificationOutcome:
    """Per-row decisions and running totals for one upload"""

    total_rows: int = 0
    added: List[ParsedRow] = field(default_factory=list)
    added_details: List[TransactionDetail] = field(default_factory=list)
    duplicate_details: List[TransactionDetail] = field(default_factory=list)
    before_window_details: List[TransactionDetail] = field(default_factory=list)
    skipped_details: List[TransactionDetail] = field(default_factory=list)

    excel_total_all_cents: int = 0
    excel_total_window_cents: int = 0
    analyzed_total_cents: int = 0
    duplicate_window_cents: int = 0

    window_first_date: Optional[date] = None
    window_last_date: Optional[date] = None

    def note_window_date(self, value: date) -> None:
        if self.window_first_date is None or value < self.window_first_date:
            self.window_first_date = value
        if self.window_last_date is None or value > self.window_last_date:
            self.window_last_date = value


def parse_row(raw: RawRow) -> ParsedRow:
    """
    Parse the cells of one row.

    Raises:
        InvalidRowError: unparsable or non-positive amount, missing customer,
            unparsable date
    """
    amount = parse_amount(raw.amount)
    if amount is None:
        raise InvalidRowError("Unparsable amount", "invalid_amount")
    if not is_positive(amount):
        raise InvalidRowError("Payment amount <= 0", "amount_not_positive")

    customer_id = normalize_customer_id(raw.customer_id)
    if not customer_id:
        raise InvalidRowError("Missing customer ID", "missing_customer_id")

    payment_date = parse_date(raw.date)
    if payment_date is None:
        raise InvalidRowError("Invalid date format", "invalid_date")

    # Missing or unreadable balance counts as zero
    balance = parse_amount(raw.balance) or Decimal("0.00")

    return ParsedRow(
        row_index=raw.row_index,
        payment_date=payment_date,
        amount=amount,
        balance=balance,
        customer_id=customer_id,
        description=raw.description or "",
        needs_name_resolution=looks_like_tin(customer_id),
    )


def _detail(row: ParsedRow, status: RowStatus, reason: Optional[str] = None) -> TransactionDetail:
    return TransactionDetail(
        row_index=row.row_index,
        status=status,
        customer_id=row.customer_id,
        amount_cents=row.amount_cents,
        balance_cents=row.balance_cents,
        date=format_date(row.payment_date),
        fingerprint=row.fingerprint,
        customer_name=row.customer_name,
        needs_name_resolution=row.needs_name_resolution,
        reason=reason,
    )


def classify_rows(
    raw_rows: Iterable[RawRow],
    existing_fingerprints: Set[str],
    config: ReconciliationConfig,
    resolve_name: Optional[Callable[[str], Optional[str]]] = None,
) -> ClassificationOutcome:
    """
    Classify each row as added, duplicate, before-window or invalid.

    Order per row: parse (invalid rows are reported, never raised), resolve the
    customer, fingerprint, then before-window > duplicate > added. A fingerprint
    seen earlier in the same upload is a duplicate too.
    """
    outcome = ClassificationOutcome()
    seen = set(existing_fingerprints)

    for raw in raw_rows:
        outcome.total_rows += 1

        amount = parse_amount(raw.amount)
        if is_positive(amount):
            outcome.excel_total_all_cents += to_minor_units(amount)

        try:
            row = parse_row(raw)
        except InvalidRowError as e:
            logger.debug("Row %s skipped: %s", raw.row_index, e.code)
            outcome.skipped_details.append(
                TransactionDetail(
                    row_index=raw.row_index,
                    status=RowStatus.INVALID,
                    customer_id=normalize_customer_id(raw.customer_id) or None,
                    amount_cents=to_minor_units(amount),
                    date=str(raw.date) if raw.date is not None else None,
                    reason=e.reason,
                )
            )
            continue

        if row.needs_name_resolution and resolve_name is not None:
            row.customer_name = resolve_name(row.customer_id)

        row.fingerprint = build_fingerprint(
            row.payment_date,
            row.amount,
            row.customer_id,
            row.balance,
            include_balance=config.fingerprint_include_balance,
        )

        if not is_after_cutoff(row.payment_date, config.payment_cutoff_date):
            outcome.before_window_details.append(_detail(row, RowStatus.BEFORE_WINDOW))
            continue

        outcome.excel_total_window_cents += row.amount_cents
        outcome.note_window_date(row.payment_date)

        if row.fingerprint in seen:
            reason = "Already in ledger" if row.fingerprint in existing_fingerprints else "Repeated in upload"
            outcome.duplicate_details.append(_detail(row, RowStatus.DUPLICATE, reason))
            outcome.duplicate_window_cents += row.amount_cents
            continue

        seen.add(row.fingerprint)
        outcome.added.append(row)
        outcome.added_details.append(_detail(row, RowStatus.ADDED))
        outcome.analyzed_total_cents += row.amount_cents

    return outcome
