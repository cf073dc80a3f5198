"""Payment recency indicators"""

from datetime import date
from typing import Dict, Iterable

from debt_reconciler.domain.models import PaymentRecord, PaymentStatus, PaymentStatusMap
from debt_reconciler.utils.date_utils import is_after_cutoff

STATUS_NONE = "none"
STATUS_YELLOW = "yellow"
STATUS_RED = "red"


def status_color(days_since_last_payment: int, warning_days: int = 14, danger_days: int = 30) -> str:
    """< warning: none, warning..danger inclusive: yellow, > danger: red"""
    if days_since_last_payment < warning_days:
        return STATUS_NONE
    if days_since_last_payment <= danger_days:
        return STATUS_YELLOW
    return STATUS_RED


def last_payment_dates(payments: Iterable[PaymentRecord], cutoff_date: date) -> Dict[str, date]:
    """Most recent after-cutoff payment date per customer, bank and cash combined"""
    latest: Dict[str, date] = {}
    for record in payments:
        if not record.customer_id or not is_after_cutoff(record.date, cutoff_date):
            continue
        current = latest.get(record.customer_id)
        if current is None or record.date > current:
            latest[record.customer_id] = record.date
    return latest


def derive_statuses(
    payments: Iterable[PaymentRecord],
    today: date,
    cutoff_date: date,
    warning_days: int = 14,
    danger_days: int = 30,
) -> PaymentStatusMap:
    statuses = {}
    for customer_id, last_date in last_payment_dates(payments, cutoff_date).items():
        days = (today - last_date).days
        statuses[customer_id] = PaymentStatus(
            customer_id=customer_id,
            last_payment_date=last_date,
            days_since_last_payment=days,
            status_color=status_color(days, warning_days, danger_days),
        )
    return statuses
