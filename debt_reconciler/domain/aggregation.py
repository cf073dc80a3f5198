"""
Debt summary computation.

currentDebt = startingDebt + totalSales - totalBankPayments - totalCashPayments,
computed from scratch for every customer on every run.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from debt_reconciler.domain.models import DebtSummary, PaymentRecord, SalesTotals, StartingDebt
from debt_reconciler.utils.date_utils import is_after_cutoff


@dataclass
class PaymentTotals:
    total_cents: int = 0
    count: int = 0
    last_date: Optional[date] = None

    def add(self, record: PaymentRecord) -> None:
        self.total_cents += record.amount_cents
        self.count += 1
        if self.last_date is None or record.date > self.last_date:
            self.last_date = record.date


def total_payments(payments: Iterable[PaymentRecord], cutoff_date: date) -> Dict[str, Dict[str, PaymentTotals]]:
    """Group after-cutoff payments by customer into bank and cash buckets"""
    grouped: Dict[str, Dict[str, PaymentTotals]] = {}
    for record in payments:
        if not is_after_cutoff(record.date, cutoff_date):
            continue
        buckets = grouped.setdefault(record.customer_id, {"bank": PaymentTotals(), "cash": PaymentTotals()})
        buckets["bank" if record.source.is_bank else "cash"].add(record)
    return grouped


def compute_debt_summaries(
    sales: Dict[str, SalesTotals],
    payments: Iterable[PaymentRecord],
    starting_debts: Dict[str, StartingDebt],
    cutoff_date: date,
    update_source: str,
    now: datetime,
    names: Optional[Dict[str, str]] = None,
) -> List[DebtSummary]:
    """
    Build one summary per customer appearing in sales, payments or starting debts.

    Customers are processed in sorted id order.
    """
    grouped = total_payments(payments, cutoff_date)
    names = names or {}
    customer_ids = set(sales) | set(grouped) | set(starting_debts)

    summaries = []
    for customer_id in sorted(customer_ids):
        sale = sales.get(customer_id) or SalesTotals(customer_id=customer_id)
        debt = starting_debts.get(customer_id)
        buckets = grouped.get(customer_id) or {"bank": PaymentTotals(), "cash": PaymentTotals()}
        bank, cash = buckets["bank"], buckets["cash"]
        starting_cents = debt.amount_cents if debt else 0

        summaries.append(
            DebtSummary(
                customer_id=customer_id,
                customer_name=(
                    sale.customer_name
                    or (debt.customer_name if debt else None)
                    or names.get(customer_id)
                ),
                total_sales_cents=sale.total_cents,
                sale_count=sale.count,
                last_sale_date=sale.last_date,
                total_bank_payments_cents=bank.total_cents,
                payment_count=bank.count,
                last_payment_date=bank.last_date,
                total_cash_payments_cents=cash.total_cents,
                cash_payment_count=cash.count,
                last_cash_payment_date=cash.last_date,
                starting_debt_cents=starting_cents,
                starting_debt_date=debt.as_of_date if debt else None,
                current_debt_cents=starting_cents + sale.total_cents - bank.total_cents - cash.total_cents,
                last_updated=now,
                update_source=update_source,
            )
        )
    return summaries


_COMPARED_FIELDS = (
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
    "current_debt_cents",
)


def classify_change(existing: Optional[DebtSummary], new: DebtSummary) -> str:
    """new | updated | unchanged; informational only, every summary is still written"""
    if existing is None:
        return "new"
    if any(getattr(existing, f) != getattr(new, f) for f in _COMPARED_FIELDS):
        return "updated"
    return "unchanged"
