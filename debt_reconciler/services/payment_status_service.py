"""Payment recency status computed from the live ledger"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from debt_reconciler.config import ReconciliationConfig
from debt_reconciler.domain.models import PaymentStatusMap
from debt_reconciler.domain.payment_status import derive_statuses
from debt_reconciler.infrastructure.database.repositories import PaymentRepository
from debt_reconciler.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


class PaymentStatusService:
    def __init__(self, db: Session, config: ReconciliationConfig):
        self.payments = PaymentRepository(db)
        self.config = config

    def calculate_status(self, today: Optional[date] = None) -> PaymentStatusMap:
        """Days since the last bank or cash payment per customer, with a warning color"""
        cutoff = self.config.payment_cutoff_date
        statuses = derive_statuses(
            self.payments.find_after(cutoff),
            today=today or utc_now().date(),
            cutoff_date=cutoff,
            warning_days=self.config.status_warning_days,
            danger_days=self.config.status_danger_days,
        )
        logger.info("Calculated payment status for %s customers", len(statuses))
        return statuses
