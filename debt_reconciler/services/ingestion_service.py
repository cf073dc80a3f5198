"""Spreadsheet ingestion and manual cash entry for the payment ledger"""

import logging
from datetime import date
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from debt_reconciler.config import ReconciliationConfig
from debt_reconciler.domain.exceptions import ConflictError, ExternalServiceError, JobSubmissionError, ValidationError
from debt_reconciler.domain.fingerprint import build_fingerprint, normalize_customer_id
from debt_reconciler.domain.ingestion import ClassificationOutcome, ParsedRow, classify_rows
from debt_reconciler.domain.models import PaymentRecord, PaymentSource, UploadReport, UploadSource
from debt_reconciler.domain.providers import CustomerNameResolver
from debt_reconciler.infrastructure.database.repositories import PaymentRepository
from debt_reconciler.infrastructure.observability.logging import log_upload
from debt_reconciler.infrastructure.observability.metrics import manual_payment_counter, record_upload
from debt_reconciler.infrastructure.spreadsheets.reader import LAYOUTS, read_rows, validate_upload
from debt_reconciler.utils.amount_utils import from_minor_units, is_positive, parse_amount, to_minor_units
from debt_reconciler.utils.date_utils import parse_date, utc_now

logger = logging.getLogger(__name__)

# Window totals may differ by rounding of one cent
VALIDATION_TOLERANCE_CENTS = 1

TriggerAggregation = Callable[[str], str]


class IngestionPipeline:
    """
    Turns uploaded statements into ledger payments.

    Validate-only runs classify and total the file without writing. Ingest
    runs persist added rows in batches and then trigger an aggregation job.
    """

    def __init__(
        self,
        db: Session,
        config: ReconciliationConfig,
        trigger_aggregation: Optional[TriggerAggregation] = None,
        name_resolver: Optional[CustomerNameResolver] = None,
    ):
        self.payments = PaymentRepository(db)
        self.config = config
        self.trigger_aggregation = trigger_aggregation
        self.name_resolver = name_resolver

    def ingest(
        self,
        file_bytes: bytes,
        source_tag: str,
        validate_only: bool = False,
        filename: Optional[str] = None,
    ) -> UploadReport:
        """
        Process one uploaded workbook.

        Raises:
            ValidationError: unknown source tag
            StructuralUploadError: the file cannot be read as a statement
            PersistenceError: a batch write failed
        """
        source = UploadSource.from_tag(source_tag)
        validate_upload(file_bytes, self.config.max_upload_bytes, filename)
        raw_rows = read_rows(file_bytes, LAYOUTS[source])

        ledger_source = source.ledger_source
        outcome = classify_rows(
            raw_rows,
            self.payments.existing_fingerprints(),
            self.config,
            resolve_name=self._cached_resolver(),
        )

        report = _base_report(source, validate_only, outcome)

        if validate_only:
            stored = 0
            if outcome.window_first_date is not None:
                stored = self.payments.sum_amount(
                    ledger_source, outcome.window_first_date, outcome.window_last_date
                )
            report.stored_window_total_cents = stored
            report.validation_difference_cents = outcome.excel_total_window_cents - stored
        else:
            self._persist(outcome.added, ledger_source)
            accounted = outcome.analyzed_total_cents + outcome.duplicate_window_cents
            report.validation_difference_cents = outcome.excel_total_window_cents - accounted
            if outcome.window_first_date is not None:
                report.stored_window_total_cents = self.payments.sum_amount(
                    ledger_source, outcome.window_first_date, outcome.window_last_date
                )
            if outcome.added:
                report.aggregation_job_id = self._trigger(f"upload:{source.value}")

        report.validation_passed = abs(report.validation_difference_cents) <= VALIDATION_TOLERANCE_CENTS
        report.app_total_cents = self.payments.sum_amount(ledger_source)
        report.message = _message(report)

        record_upload(report)
        log_upload(
            source=source.value,
            validate_only=validate_only,
            total_rows=report.total_rows_processed,
            added=report.added_count,
            duplicates=report.duplicate_count,
            before_window=report.before_window_count,
            skipped=report.skipped_count,
            validation_difference_cents=report.validation_difference_cents,
            job_id=report.aggregation_job_id,
        )
        return report

    def _persist(self, rows: List[ParsedRow], source: PaymentSource) -> None:
        uploaded_at = utc_now()
        records = [
            PaymentRecord(
                fingerprint=row.fingerprint,
                customer_id=row.customer_id,
                customer_name=row.customer_name,
                amount_cents=row.amount_cents,
                balance_after_cents=row.balance_cents,
                date=row.payment_date,
                source=source,
                description=row.description,
                uploaded_at=uploaded_at,
                row_index=row.row_index,
            )
            for row in rows
        ]
        self.payments.save_in_batches(records, self.config.batch_size)
        if records:
            logger.info("Saved %s payments in batches of %s", len(records), self.config.batch_size)

    def _cached_resolver(self) -> Optional[Callable[[str], Optional[str]]]:
        if self.name_resolver is None:
            return None
        cache: Dict[str, Optional[str]] = {}

        def resolve(customer_id: str) -> Optional[str]:
            if customer_id not in cache:
                try:
                    cache[customer_id] = self.name_resolver.resolve_name(customer_id)
                except ExternalServiceError as e:
                    logger.warning("Name lookup for %s failed: %s", customer_id, e)
                    cache[customer_id] = None
            return cache[customer_id]

        return resolve

    def _trigger(self, source: str) -> Optional[str]:
        if self.trigger_aggregation is None:
            return None
        try:
            return self.trigger_aggregation(source)
        except JobSubmissionError as e:
            # Ledger writes are committed; summaries catch up on the next job
            logger.error("Could not trigger aggregation after %s: %s", source, e)
            return None

    def record_cash_payment(
        self,
        customer_id: str,
        amount,
        payment_date,
        description: str = "",
        customer_name: Optional[str] = None,
        today: Optional[date] = None,
    ) -> PaymentRecord:
        """
        Record one hand-entered cash payment.

        Raises:
            ValidationError: missing customer, non-positive amount, missing or future date
            ConflictError: the same payment is already in the ledger
        """
        customer_id = normalize_customer_id(customer_id)
        if not customer_id:
            raise ValidationError("customer_id", "Customer ID is required")

        parsed_amount = parse_amount(amount)
        if not is_positive(parsed_amount):
            raise ValidationError("amount", "Amount must be positive")

        parsed_date = parse_date(payment_date)
        if parsed_date is None:
            raise ValidationError("payment_date", "Payment date is required")
        if parsed_date > (today or utc_now().date()):
            raise ValidationError("payment_date", "Payment date cannot be in the future")

        fingerprint = build_fingerprint(
            parsed_date,
            parsed_amount,
            customer_id,
            None,
            include_balance=self.config.fingerprint_include_balance,
        )
        if self.payments.fingerprint_exists(fingerprint):
            raise ConflictError(f"Payment {fingerprint} already exists")

        record = self.payments.add(
            PaymentRecord(
                fingerprint=fingerprint,
                customer_id=customer_id,
                customer_name=customer_name,
                amount_cents=to_minor_units(parsed_amount),
                balance_after_cents=0,
                date=parsed_date,
                source=PaymentSource.MANUAL_CASH,
                description=description or "Manual cash payment",
            )
        )
        manual_payment_counter.inc()
        logger.info("Recorded manual cash payment %s for %s", record.id, customer_id)
        self._trigger("manual-cash")
        return record

    def list_payments(
        self,
        customer_id: Optional[str] = None,
        source: Optional[PaymentSource] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[PaymentRecord]:
        return self.payments.find(customer_id, source, start_date, end_date)


def _base_report(source: UploadSource, validate_only: bool, outcome: ClassificationOutcome) -> UploadReport:
    return UploadReport(
        source=source.value,
        validate_only=validate_only,
        excel_total_all_cents=outcome.excel_total_all_cents,
        excel_total_window_cents=outcome.excel_total_window_cents,
        analyzed_total_cents=outcome.analyzed_total_cents,
        total_rows_processed=outcome.total_rows,
        added_count=len(outcome.added_details),
        duplicate_count=len(outcome.duplicate_details),
        skipped_count=len(outcome.skipped_details),
        before_window_count=len(outcome.before_window_details),
        added_transactions=outcome.added_details,
        duplicate_transactions=outcome.duplicate_details,
        before_window_transactions=outcome.before_window_details,
        skipped_transactions=outcome.skipped_details,
    )


def _message(report: UploadReport) -> str:
    if report.validate_only:
        verdict = "passed" if report.validation_passed else "failed"
        return (
            f"Validation {verdict}: {report.duplicate_count} already stored, "
            f"{report.added_count} missing, difference {from_minor_units(report.validation_difference_cents)}"
        )
    return (
        f"Processed {report.total_rows_processed} rows: {report.added_count} added, "
        f"{report.duplicate_count} duplicates, {report.before_window_count} before cutoff, "
        f"{report.skipped_count} skipped"
    )
