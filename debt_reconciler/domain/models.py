"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from debt_reconciler.domain.exceptions import ValidationError


class PaymentSource(str, Enum):
    """Where a ledger payment came from"""

    BANK_TBC = "bank-tbc"
    BANK_BOG = "bank-bog"
    EXCEL_MANUAL = "excel-manual"  # manual-cash spreadsheet rows
    MANUAL_CASH = "manual-cash"  # single hand-entered cash payment

    @property
    def is_bank(self) -> bool:
        return self in (PaymentSource.BANK_TBC, PaymentSource.BANK_BOG)

    @property
    def is_cash(self) -> bool:
        return not self.is_bank


class UploadSource(str, Enum):
    """Source tag accepted on the upload entrypoint"""

    BANK_TBC = "bank-tbc"
    BANK_BOG = "bank-bog"
    MANUAL_CASH = "manual-cash"

    @classmethod
    def from_tag(cls, tag: Optional[str]) -> "UploadSource":
        """Resolve a tag, accepting the legacy short bank names"""
        normalized = (tag or "").strip().lower()
        aliases = {"tbc": cls.BANK_TBC, "bog": cls.BANK_BOG, "cash": cls.MANUAL_CASH}
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ValidationError("source", "Source must be one of: bank-tbc, bank-bog, manual-cash")

    @property
    def ledger_source(self) -> PaymentSource:
        """Source recorded on payments persisted from this kind of upload"""
        if self is UploadSource.MANUAL_CASH:
            return PaymentSource.EXCEL_MANUAL
        return PaymentSource(self.value)


@dataclass
class PaymentRecord:
    """One ledger entry. Immutable once written; only deleted by deduplication."""

    fingerprint: str
    customer_id: str
    amount_cents: int
    balance_after_cents: int
    date: date
    source: PaymentSource
    description: str = ""
    uploaded_at: Optional[datetime] = None
    row_index: Optional[int] = None
    customer_name: Optional[str] = None
    id: Optional[str] = None


@dataclass
class StartingDebt:
    """Balance carried over from before the cutoff date (externally managed)"""

    customer_id: str
    amount_cents: int
    as_of_date: Optional[date] = None
    customer_name: Optional[str] = None


@dataclass
class SalesTotals:
    """Per-customer sum of after-cutoff invoices (externally computed)"""

    customer_id: str
    total_cents: int = 0
    count: int = 0
    last_date: Optional[date] = None
    customer_name: Optional[str] = None


@dataclass
class DebtSummary:
    """Derived per-customer balance, written only by the aggregation job"""

    customer_id: str
    total_sales_cents: int
    sale_count: int
    last_sale_date: Optional[date]
    total_bank_payments_cents: int
    payment_count: int
    last_payment_date: Optional[date]
    total_cash_payments_cents: int
    cash_payment_count: int
    last_cash_payment_date: Optional[date]
    starting_debt_cents: int
    starting_debt_date: Optional[date]
    current_debt_cents: int
    last_updated: Optional[datetime] = None
    update_source: str = ""
    customer_name: Optional[str] = None


class RowStatus(str, Enum):
    """Classification of one spreadsheet row"""

    ADDED = "added"
    DUPLICATE = "duplicate"
    BEFORE_WINDOW = "before-window"
    INVALID = "invalid"


@dataclass
class TransactionDetail:
    """Audit line for one classified spreadsheet row"""

    row_index: int
    status: RowStatus
    customer_id: Optional[str] = None
    amount_cents: int = 0
    balance_cents: int = 0
    date: Optional[str] = None
    fingerprint: Optional[str] = None
    customer_name: Optional[str] = None
    needs_name_resolution: bool = False
    reason: Optional[str] = None


@dataclass
class UploadReport:
    """Outcome of one spreadsheet ingestion (or validation) run"""

    source: str
    validate_only: bool
    success: bool = True
    message: str = ""
    aggregation_job_id: Optional[str] = None

    excel_total_all_cents: int = 0
    excel_total_window_cents: int = 0
    analyzed_total_cents: int = 0
    app_total_cents: int = 0
    stored_window_total_cents: int = 0

    total_rows_processed: int = 0
    added_count: int = 0
    duplicate_count: int = 0
    skipped_count: int = 0
    before_window_count: int = 0

    validation_passed: bool = True
    validation_difference_cents: int = 0

    added_transactions: List[TransactionDetail] = field(default_factory=list)
    duplicate_transactions: List[TransactionDetail] = field(default_factory=list)
    before_window_transactions: List[TransactionDetail] = field(default_factory=list)
    skipped_transactions: List[TransactionDetail] = field(default_factory=list)


@dataclass
class DuplicateGroup:
    """Ledger records sharing one fingerprint"""

    fingerprint: str
    customer_id: str
    date: date
    amount_cents: int
    count: int
    kept_payment_id: str
    deleted_payment_ids: List[str]


@dataclass
class DuplicateReport:
    """Outcome of a deduplication scan (analyze) or removal"""

    total_payments: int
    duplicate_groups: int
    payments_deleted: int
    amount_recovered_cents: int
    deleted_payment_ids: List[str] = field(default_factory=list)
    groups: List[DuplicateGroup] = field(default_factory=list)
    aggregation_job_id: Optional[str] = None


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class AggregationResult:
    """Counts from one full recomputation of the debt summaries"""

    total_customers: int
    new_count: int
    updated_count: int
    unchanged_count: int
    removed_count: int = 0
    duration_ms: int = 0


@dataclass
class AggregationJob:
    """Polled status record of one background aggregation"""

    job_id: str
    status: JobStatus
    source: str
    created_at: datetime
    current_step: str = "Queued"
    progress_percent: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[AggregationResult] = None
    error_message: Optional[str] = None
    error_details: Optional[str] = None


@dataclass
class PaymentStatus:
    """Recency indicator for one customer"""

    customer_id: str
    last_payment_date: date
    days_since_last_payment: int
    status_color: str  # none | yellow | red


PaymentStatusMap = Dict[str, PaymentStatus]
