"""Retroactive duplicate cleanup of the payment ledger"""

import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from debt_reconciler.config import ReconciliationConfig
from debt_reconciler.domain.deduplication import find_duplicate_groups
from debt_reconciler.domain.exceptions import JobSubmissionError
from debt_reconciler.domain.models import DuplicateGroup, DuplicateReport
from debt_reconciler.infrastructure.database.repositories import PaymentRepository
from debt_reconciler.infrastructure.observability.logging import log_deduplication
from debt_reconciler.infrastructure.observability.metrics import duplicates_deleted_counter

logger = logging.getLogger(__name__)


class DeduplicationService:
    """Finds ledger records sharing a canonical fingerprint and removes all but the first upload"""

    def __init__(
        self,
        db: Session,
        config: ReconciliationConfig,
        trigger_aggregation: Optional[Callable[[str], str]] = None,
    ):
        self.payments = PaymentRepository(db)
        self.config = config
        self.trigger_aggregation = trigger_aggregation

    def _scan(self):
        records = self.payments.find_all()
        groups = find_duplicate_groups(records, include_balance=self.config.fingerprint_include_balance)
        amounts = {r.id: r.amount_cents for r in records}
        return records, groups, amounts

    def analyze(self) -> DuplicateReport:
        """Report duplicate groups without deleting anything"""
        records, groups, amounts = self._scan()
        report = _report(len(records), groups, amounts, deleted=0)
        log_deduplication(report.total_payments, report.duplicate_groups, 0, report.amount_recovered_cents, True)
        return report

    def remove(self) -> DuplicateReport:
        """
        Delete every non-retained duplicate in one transaction.

        Triggers an aggregation job when anything was deleted.

        Raises:
            PersistenceError: the delete failed and was rolled back
        """
        records, groups, amounts = self._scan()
        candidate_ids = [pid for group in groups for pid in group.deleted_payment_ids]

        deleted = self.payments.delete_by_ids(candidate_ids)
        report = _report(len(records), groups, amounts, deleted=deleted)
        duplicates_deleted_counter.inc(deleted)
        log_deduplication(report.total_payments, report.duplicate_groups, deleted, report.amount_recovered_cents, False)

        if deleted and self.trigger_aggregation is not None:
            try:
                report.aggregation_job_id = self.trigger_aggregation("deduplication")
            except JobSubmissionError as e:
                logger.error("Could not trigger aggregation after deduplication: %s", e)
        return report


def _report(total: int, groups: List[DuplicateGroup], amounts, deleted: int) -> DuplicateReport:
    candidate_ids = [pid for group in groups for pid in group.deleted_payment_ids]
    return DuplicateReport(
        total_payments=total,
        duplicate_groups=len(groups),
        payments_deleted=deleted,
        amount_recovered_cents=sum(amounts[pid] for pid in candidate_ids),
        deleted_payment_ids=candidate_ids,
        groups=groups,
    )
