"""Unit tests for ledger deduplication"""

from datetime import date, datetime
from sqlalchemy.orm import Session
from debt_reconciler.config import ReconciliationConfig
from debt_reconciler.domain.deduplication import find_duplicate_groups
from debt_reconciler.domain.models import PaymentRecord, PaymentSource
from debt_reconciler.infrastructure.database.repositories import PaymentRepository
from debt_reconciler.services.deduplication_service import DeduplicationService
from factories import RecordingTrigger


def make_record(
    payment_id: str,
    uploaded_at,
    amount_cents: int = 141000,
    balance_cents: int = 232246,
    fingerprint: str = "2025-05-13|141000|405123456|232246",
    customer_id: str = "405123456",
) -> PaymentRecord:
    return PaymentRecord(
        id=payment_id,
        fingerprint=fingerprint,
        customer_id=customer_id,
        amount_cents=amount_cents,
        balance_after_cents=balance_cents,
        date=date(2025, 5, 13),
        source=PaymentSource.BANK_TBC,
        uploaded_at=uploaded_at,
    )


def test_earliest_upload_is_kept():
    """Missing timestamps sort last; id breaks remaining ties"""
    records = [
        make_record("b", datetime(2025, 6, 2)),
        make_record("c", None),
        make_record("a", datetime(2025, 6, 1)),
        make_record("z", datetime(2025, 6, 1)),
    ]

    groups = find_duplicate_groups(records)

    assert len(groups) == 1
    assert groups[0].kept_payment_id == "a"
    assert groups[0].deleted_payment_ids == ["z", "b", "c"]
    assert groups[0].count == 4


def test_records_with_stale_fingerprints_are_grouped_by_recomputed_identity():
    """A row stored under the three-part scheme still matches its four-part twin"""
    records = [
        make_record("old", datetime(2025, 6, 1), fingerprint="2025-05-13|141000|405123456"),
        make_record("new", datetime(2025, 6, 3)),
    ]

    groups = find_duplicate_groups(records)

    assert [g.kept_payment_id for g in groups] == ["old"]
    assert groups[0].fingerprint == "2025-05-13|141000|405123456|232246"


def test_different_balances_are_not_duplicates():
    records = [
        make_record("a", datetime(2025, 6, 1)),
        make_record("b", datetime(2025, 6, 1), balance_cents=677346),
    ]

    assert find_duplicate_groups(records) == []
    assert len(find_duplicate_groups(records, include_balance=False)) == 1


def seed(db: Session) -> None:
    PaymentRepository(db).save_all([
        make_record("keep-1", datetime(2025, 6, 1, 9, 0)),
        make_record("dup-1", datetime(2025, 6, 2, 9, 0)),
        make_record("dup-2", datetime(2025, 6, 3, 9, 0)),
        make_record(
            "keep-2",
            datetime(2025, 6, 1, 9, 0),
            amount_cents=5000,
            balance_cents=100,
            fingerprint="2025-05-13|5000|C-2|100",
            customer_id="C-2",
        ),
        make_record(
            "dup-3",
            datetime(2025, 6, 4, 9, 0),
            amount_cents=5000,
            balance_cents=100,
            fingerprint="2025-05-13|5000|C-2|100",
            customer_id="C-2",
        ),
        make_record("unique", datetime(2025, 6, 1), amount_cents=700, balance_cents=1, fingerprint="x", customer_id="C-3"),
    ])


def test_analyze_reports_without_deleting(db: Session, config: ReconciliationConfig):
    seed(db)
    trigger = RecordingTrigger()

    report = DeduplicationService(db, config, trigger).analyze()

    assert report.total_payments == 6
    assert report.duplicate_groups == 2
    assert report.payments_deleted == 0
    assert sorted(report.deleted_payment_ids) == ["dup-1", "dup-2", "dup-3"]
    assert report.amount_recovered_cents == 141000 * 2 + 5000
    assert len(PaymentRepository(db).find_all()) == 6
    assert trigger.sources == []


def test_remove_deletes_exactly_the_reported_candidates(db: Session, config: ReconciliationConfig):
    seed(db)
    trigger = RecordingTrigger()
    service = DeduplicationService(db, config, trigger)
    analysis = service.analyze()

    report = service.remove()

    assert report.payments_deleted == 3
    assert sorted(report.deleted_payment_ids) == sorted(analysis.deleted_payment_ids)
    assert report.aggregation_job_id == "job-1"
    assert trigger.sources == ["deduplication"]
    remaining = {p.id for p in PaymentRepository(db).find_all()}
    assert remaining == {"keep-1", "keep-2", "unique"}
    assert service.analyze().duplicate_groups == 0


def test_remove_without_duplicates_does_not_trigger(db: Session, config: ReconciliationConfig):
    PaymentRepository(db).save_all([make_record("only", datetime(2025, 6, 1))])
    trigger = RecordingTrigger()

    report = DeduplicationService(db, config, trigger).remove()

    assert report.payments_deleted == 0
    assert report.aggregation_job_id is None
    assert trigger.sources == []
