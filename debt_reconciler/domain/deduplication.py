"""Duplicate detection over the payment ledger"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List

from debt_reconciler.domain.fingerprint import fingerprint_from_cents
from debt_reconciler.domain.models import DuplicateGroup, PaymentRecord


def canonical_fingerprint(record: PaymentRecord, include_balance: bool = True) -> str:
    """Recompute the fingerprint from stored fields, ignoring the stored one"""
    return fingerprint_from_cents(
        record.date,
        record.amount_cents,
        record.customer_id,
        record.balance_after_cents,
        include_balance=include_balance,
    )


def _keep_order(record: PaymentRecord):
    # Earliest upload first; missing timestamps sort last, id breaks ties
    return (record.uploaded_at is None, record.uploaded_at or datetime.min, record.id or "")


def find_duplicate_groups(records: Iterable[PaymentRecord], include_balance: bool = True) -> List[DuplicateGroup]:
    """
    Group records by canonical fingerprint and pick the survivor of each group.

    Only groups with more than one member are returned, ordered by fingerprint.
    """
    by_fingerprint: Dict[str, List[PaymentRecord]] = defaultdict(list)
    for record in records:
        by_fingerprint[canonical_fingerprint(record, include_balance)].append(record)

    groups = []
    for fingerprint in sorted(by_fingerprint):
        members = by_fingerprint[fingerprint]
        if len(members) < 2:
            continue
        ordered = sorted(members, key=_keep_order)
        keeper = ordered[0]
        groups.append(
            DuplicateGroup(
                fingerprint=fingerprint,
                customer_id=keeper.customer_id,
                date=keeper.date,
                amount_cents=keeper.amount_cents,
                count=len(members),
                kept_payment_id=keeper.id,
                deleted_payment_ids=[r.id for r in ordered[1:]],
            )
        )
    return groups
