"""Full recomputation of per-customer debt summaries"""

import logging
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from debt_reconciler.config import ReconciliationConfig
from debt_reconciler.domain.aggregation import classify_change, compute_debt_summaries
from debt_reconciler.domain.models import AggregationResult
from debt_reconciler.domain.providers import SalesTotalsProvider, StartingDebtProvider
from debt_reconciler.infrastructure.database.repositories import DebtSummaryRepository, PaymentRepository
from debt_reconciler.utils.date_utils import utc_now

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]


class AggregationService:
    """
    Recomputes every customer's debt summary from the three sources.

    Collaborator or persistence failures propagate; the summary batch is
    written in one transaction, so a failed run leaves prior summaries intact.
    Customers that dropped out of every source lose their summary in that
    same transaction.
    """

    def __init__(
        self,
        db: Session,
        sales_provider: SalesTotalsProvider,
        debt_provider: StartingDebtProvider,
        config: ReconciliationConfig,
    ):
        self.payments = PaymentRepository(db)
        self.summaries = DebtSummaryRepository(db)
        self.sales_provider = sales_provider
        self.debt_provider = debt_provider
        self.config = config

    def aggregate(self, source: str, progress: Optional[ProgressCallback] = None) -> AggregationResult:
        report = progress or (lambda step, percent: None)
        started = time.monotonic()
        cutoff = self.config.payment_cutoff_date

        report("Loading sales", 20)
        sales = self.sales_provider.get_all_sales_totals(cutoff)
        logger.info("Loaded sales totals for %s customers", len(sales))

        report("Loading payments", 40)
        payments = self.payments.find_after(cutoff)
        logger.info("Loaded %s payments after %s", len(payments), cutoff)

        report("Loading starting debts", 60)
        starting_debts = self.debt_provider.get_all_starting_debts()
        logger.info("Loaded %s starting debts", len(starting_debts))

        report("Computing summaries", 75)
        # Names already on stored summaries survive when no source supplies one
        existing = self.summaries.get_all_by_id()
        known_names = {cid: s.customer_name for cid, s in existing.items() if s.customer_name}
        for record in payments:
            if record.customer_name:
                known_names.setdefault(record.customer_id, record.customer_name)

        summaries = compute_debt_summaries(
            sales=sales,
            payments=payments,
            starting_debts=starting_debts,
            cutoff_date=cutoff,
            update_source=source,
            now=utc_now(),
            names=known_names,
        )

        counts = {"new": 0, "updated": 0, "unchanged": 0}
        for summary in summaries:
            counts[classify_change(existing.get(summary.customer_id), summary)] += 1

        report("Persisting summaries", 90)
        removed = self.summaries.replace_all(summaries)

        result = AggregationResult(
            total_customers=len(summaries),
            new_count=counts["new"],
            updated_count=counts["updated"],
            unchanged_count=counts["unchanged"],
            removed_count=removed,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "Aggregated %s customers (%s new, %s updated, %s unchanged, %s removed)",
            result.total_customers,
            result.new_count,
            result.updated_count,
            result.unchanged_count,
            result.removed_count,
        )
        return result
