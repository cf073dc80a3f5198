"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from debt_reconciler.domain.models import JobStatus, PaymentSource, RowStatus


class ORMSchema(BaseModel):
    """Base for responses built from domain dataclasses"""

    model_config = ConfigDict(from_attributes=True)


class TransactionDetailSchema(ORMSchema):
    """Single classified spreadsheet row"""

    row_index: int
    status: RowStatus
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    needs_name_resolution: bool = False
    amount_cents: int = 0
    balance_cents: int = 0
    date: Optional[str] = None
    fingerprint: Optional[str] = None
    reason: Optional[str] = None


class UploadReportResponse(ORMSchema):
    """Response for POST /v1/payments/upload"""

    success: bool
    message: str
    source: str
    validate_only: bool
    aggregation_job_id: Optional[str] = None

    excel_total_all_cents: int
    excel_total_window_cents: int
    analyzed_total_cents: int
    app_total_cents: int
    stored_window_total_cents: int

    total_rows_processed: int
    added_count: int
    duplicate_count: int
    skipped_count: int
    before_window_count: int

    validation_passed: bool
    validation_difference_cents: int

    added_transactions: List[TransactionDetailSchema]
    duplicate_transactions: List[TransactionDetailSchema]
    before_window_transactions: List[TransactionDetailSchema]
    skipped_transactions: List[TransactionDetailSchema]


class ManualCashPaymentRequest(BaseModel):
    """Request body for POST /v1/payments/manual"""

    customer_id: str = Field(..., min_length=1, description="Customer tax id or code")
    amount: Decimal = Field(..., gt=0, description="Amount paid in GEL")
    payment_date: date
    description: str = ""
    customer_name: Optional[str] = None


class PaymentResponse(ORMSchema):
    """Single ledger payment"""

    id: str
    fingerprint: str
    customer_id: str
    customer_name: Optional[str] = None
    amount_cents: int
    balance_after_cents: int
    date: date
    source: PaymentSource
    description: str
    uploaded_at: Optional[datetime] = None
    row_index: Optional[int] = None


class PaymentStatusResponse(ORMSchema):
    customer_id: str
    last_payment_date: date
    days_since_last_payment: int
    status_color: str


class DuplicateGroupSchema(ORMSchema):
    fingerprint: str
    customer_id: str
    date: date
    amount_cents: int
    count: int
    kept_payment_id: str
    deleted_payment_ids: List[str]


class DuplicateReportResponse(ORMSchema):
    """Response for the duplicate analyze/remove endpoints"""

    total_payments: int
    duplicate_groups: int
    payments_deleted: int
    amount_recovered_cents: int
    deleted_payment_ids: List[str]
    groups: List[DuplicateGroupSchema]
    aggregation_job_id: Optional[str] = None


class AggregationTriggerResponse(BaseModel):
    """Response for POST /v1/aggregation/trigger"""

    job_id: str
    status: JobStatus
    message: str


class AggregationResultSchema(ORMSchema):
    total_customers: int
    new_count: int
    updated_count: int
    unchanged_count: int
    removed_count: int = 0
    duration_ms: int


class AggregationJobResponse(ORMSchema):
    """Response for GET /v1/aggregation/jobs/{job_id}"""

    job_id: str
    status: JobStatus
    source: str
    current_step: str
    progress_percent: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[AggregationResultSchema] = None
    error_message: Optional[str] = None
    error_details: Optional[str] = None


class DebtSummaryResponse(ORMSchema):
    """Per-customer debt breakdown"""

    customer_id: str
    customer_name: Optional[str] = None
    total_sales_cents: int
    sale_count: int
    last_sale_date: Optional[date] = None
    total_bank_payments_cents: int
    payment_count: int
    last_payment_date: Optional[date] = None
    total_cash_payments_cents: int
    cash_payment_count: int
    last_cash_payment_date: Optional[date] = None
    starting_debt_cents: int
    starting_debt_date: Optional[date] = None
    current_debt_cents: int
    last_updated: Optional[datetime] = None
    update_source: str


class DebtSummaryListResponse(BaseModel):
    """Response for GET /v1/summaries"""

    total_customers: int
    total_debt_cents: int
    summaries: List[DebtSummaryResponse]


PaymentStatusMapResponse = Dict[str, PaymentStatusResponse]
