"""Data access layer for the payment ledger and debt summaries"""

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from debt_reconciler.domain.exceptions import PersistenceError
from debt_reconciler.domain.models import DebtSummary, PaymentRecord, PaymentSource
from debt_reconciler.infrastructure.database.models import CustomerDebtSummary, Payment
from debt_reconciler.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


class PaymentRepository:
    """Repository for the payment ledger"""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Ledger %s failed: %s", action, e, exc_info=True)
            raise PersistenceError(f"Failed to {action}") from e

    def existing_fingerprints(self) -> Set[str]:
        """All fingerprints currently in the ledger, for O(1) duplicate lookup"""
        return {fp for (fp,) in self.db.query(Payment.fingerprint).all()}

    def fingerprint_exists(self, fingerprint: str) -> bool:
        return self.db.query(Payment.id).filter(Payment.fingerprint == fingerprint).first() is not None

    def save_all(self, records: List[PaymentRecord]) -> List[PaymentRecord]:
        """Persist a batch of new payments in one transaction"""
        return self.save_in_batches(records, batch_size=len(records) or 1)

    def save_in_batches(self, records: List[PaymentRecord], batch_size: int) -> List[PaymentRecord]:
        """
        Flush payments batch by batch and commit once.

        A failing batch rolls back every earlier batch of the same call, so the
        ledger never holds part of an upload.
        """
        if not records:
            return []

        for start in range(0, len(records), batch_size):
            batch = records[start:start + batch_size]
            self._flush_batch(batch)
            logger.info("Flushed batch of %s payments (%s/%s)", len(batch), start + len(batch), len(records))
        self._commit("save payment batch")
        return records

    def _flush_batch(self, records: List[PaymentRecord]) -> None:
        rows = []
        for record in records:
            record.uploaded_at = record.uploaded_at or utc_now()
            rows.append(_to_row(record))

        self.db.add_all(rows)
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Ledger batch flush failed: %s", e, exc_info=True)
            raise PersistenceError("Failed to save payment batch") from e
        for record, row in zip(records, rows):
            record.id = row.id

    def add(self, record: PaymentRecord) -> PaymentRecord:
        """Persist one payment"""
        return self.save_all([record])[0]

    def find_all(self) -> List[PaymentRecord]:
        return [_to_domain(p) for p in self.db.query(Payment).all()]

    def find(
        self,
        customer_id: Optional[str] = None,
        source: Optional[PaymentSource] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[PaymentRecord]:
        """Filter payments; date bounds are inclusive"""
        query = self.db.query(Payment)
        if customer_id:
            query = query.filter(Payment.customer_id == customer_id)
        if source:
            query = query.filter(Payment.source == source.value)
        if start_date:
            query = query.filter(Payment.payment_date >= start_date)
        if end_date:
            query = query.filter(Payment.payment_date <= end_date)
        return [_to_domain(p) for p in query.order_by(Payment.payment_date, Payment.row_index).all()]

    def find_after(self, cutoff: date) -> List[PaymentRecord]:
        """Payments strictly after the cutoff date"""
        return [_to_domain(p) for p in self.db.query(Payment).filter(Payment.payment_date > cutoff).all()]

    def sum_amount(
        self,
        source: PaymentSource,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> int:
        """Sum of amounts in cents for one source, inclusive date bounds"""
        query = self.db.query(func.coalesce(func.sum(Payment.amount_cents), 0)).filter(
            Payment.source == source.value
        )
        if start_date:
            query = query.filter(Payment.payment_date >= start_date)
        if end_date:
            query = query.filter(Payment.payment_date <= end_date)
        return int(query.scalar() or 0)

    def delete_by_ids(self, payment_ids: Iterable[str]) -> int:
        """Delete payments in one transaction"""
        ids = list(payment_ids)
        if not ids:
            return 0
        deleted = (
            self.db.query(Payment)
            .filter(Payment.id.in_(ids))
            .delete(synchronize_session=False)
        )
        self._commit("delete payments")
        return deleted


class DebtSummaryRepository:
    """Repository for derived per-customer debt summaries"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, customer_id: str) -> Optional[DebtSummary]:
        row = self.db.get(CustomerDebtSummary, customer_id)
        return _summary_to_domain(row) if row else None

    def get_all(self) -> List[DebtSummary]:
        rows = self.db.query(CustomerDebtSummary).order_by(CustomerDebtSummary.customer_id).all()
        return [_summary_to_domain(r) for r in rows]

    def get_all_by_id(self) -> Dict[str, DebtSummary]:
        return {s.customer_id: s for s in self.get_all()}

    def save(self, summary: DebtSummary) -> DebtSummary:
        self.save_all([summary])
        return summary

    def save_all(self, summaries: List[DebtSummary]) -> None:
        """Overwrite summaries in one all-or-nothing transaction"""
        if not summaries:
            return
        try:
            for summary in summaries:
                summary.last_updated = summary.last_updated or utc_now()
                self.db.merge(_summary_to_row(summary))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Batch save of %s debt summaries failed: %s", len(summaries), e, exc_info=True)
            raise PersistenceError("Failed to batch save debt summaries") from e
        logger.info("Batch saved %s debt summaries", len(summaries))

    def replace_all(self, summaries: List[DebtSummary]) -> int:
        """
        Make the stored summaries exactly the given set, in one transaction.

        Rows for customers missing from the set are deleted. Returns how many
        were deleted.
        """
        keep = [s.customer_id for s in summaries]
        try:
            removed = (
                self.db.query(CustomerDebtSummary)
                .filter(CustomerDebtSummary.customer_id.notin_(keep))
                .delete(synchronize_session=False)
            )
            for summary in summaries:
                summary.last_updated = summary.last_updated or utc_now()
                self.db.merge(_summary_to_row(summary))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Replacing %s debt summaries failed: %s", len(summaries), e, exc_info=True)
            raise PersistenceError("Failed to batch save debt summaries") from e
        logger.info("Batch saved %s debt summaries, removed %s stale", len(summaries), removed)
        return removed

    def delete(self, customer_id: str) -> bool:
        row = self.db.get(CustomerDebtSummary, customer_id)
        if row is None:
            return False
        self.db.delete(row)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to delete debt summary {customer_id}") from e
        return True


def _to_row(record: PaymentRecord) -> Payment:
    row = Payment(
        fingerprint=record.fingerprint,
        customer_id=record.customer_id,
        customer_name=record.customer_name,
        amount_cents=record.amount_cents,
        balance_after_cents=record.balance_after_cents,
        payment_date=record.date,
        source=record.source.value,
        description=record.description or "",
        row_index=record.row_index,
        uploaded_at=record.uploaded_at,
    )
    if record.id:
        row.id = record.id
    return row


def _to_domain(row: Payment) -> PaymentRecord:
    return PaymentRecord(
        id=row.id,
        fingerprint=row.fingerprint,
        customer_id=row.customer_id,
        customer_name=row.customer_name,
        amount_cents=row.amount_cents,
        balance_after_cents=row.balance_after_cents or 0,
        date=row.payment_date,
        source=PaymentSource(row.source),
        description=row.description or "",
        row_index=row.row_index,
        uploaded_at=row.uploaded_at,
    )


_SUMMARY_FIELDS = (
    "customer_id",
    "customer_name",
    "total_sales_cents",
    "sale_count",
    "last_sale_date",
    "total_bank_payments_cents",
    "payment_count",
    "last_payment_date",
    "total_cash_payments_cents",
    "cash_payment_count",
    "last_cash_payment_date",
    "starting_debt_cents",
    "starting_debt_date",
    "current_debt_cents",
    "last_updated",
    "update_source",
)


def _summary_to_row(summary: DebtSummary) -> CustomerDebtSummary:
    return CustomerDebtSummary(**{name: getattr(summary, name) for name in _SUMMARY_FIELDS})


def _summary_to_domain(row: CustomerDebtSummary) -> DebtSummary:
    return DebtSummary(**{name: getattr(row, name) for name in _SUMMARY_FIELDS})
