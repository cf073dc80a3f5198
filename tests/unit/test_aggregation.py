"""Unit tests for debt aggregation and the background job orchestrator"""

import threading
import pytest
from datetime import date, datetime, timedelta
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from debt_reconciler.config import ReconciliationConfig
from debt_reconciler.domain.aggregation import classify_change, compute_debt_summaries
from debt_reconciler.domain.exceptions import ExternalServiceError, JobSubmissionError
from debt_reconciler.domain.models import JobStatus, PaymentRecord, PaymentSource, SalesTotals, StartingDebt
from debt_reconciler.infrastructure.database.repositories import DebtSummaryRepository, PaymentRepository
from debt_reconciler.services.aggregation_jobs import AggregationOrchestrator, JobRegistry
from debt_reconciler.services.aggregation_service import AggregationService
from debt_reconciler.utils.date_utils import utc_now
from factories import CUTOFF, FakeDebtProvider, FakeSalesProvider


def payment(customer_id: str, amount_cents: int, payment_date: date, source: PaymentSource, balance: int = 0) -> PaymentRecord:
    return PaymentRecord(
        fingerprint=f"{payment_date}|{amount_cents}|{customer_id}|{balance}",
        customer_id=customer_id,
        amount_cents=amount_cents,
        balance_after_cents=balance,
        date=payment_date,
        source=source,
    )


LEDGER = [
    payment("A", 15000, date(2025, 5, 2), PaymentSource.BANK_TBC),
    payment("A", 5000, date(2025, 5, 20), PaymentSource.BANK_BOG),
    payment("A", 99900, date(2025, 4, 29), PaymentSource.BANK_BOG),  # on the cutoff day, historical
    payment("A", 5000, date(2025, 5, 10), PaymentSource.MANUAL_CASH),
    payment("B", 3000, date(2025, 6, 1), PaymentSource.EXCEL_MANUAL),
]
SALES = {
    "A": SalesTotals("A", total_cents=50000, count=2, last_date=date(2025, 5, 15), customer_name="Alpha LLC"),
    "D": SalesTotals("D", total_cents=1000, count=1, last_date=date(2025, 5, 1)),
}
DEBTS = {
    "A": StartingDebt("A", amount_cents=100000, as_of_date=CUTOFF),
    "C": StartingDebt("C", amount_cents=7000, as_of_date=CUTOFF, customer_name="Charlie"),
}


def assert_invariant(summary) -> None:
    assert summary.current_debt_cents == (
        summary.starting_debt_cents
        + summary.total_sales_cents
        - summary.total_bank_payments_cents
        - summary.total_cash_payments_cents
    )


def test_compute_debt_summaries_covers_every_source():
    summaries = compute_debt_summaries(SALES, LEDGER, DEBTS, CUTOFF, "test", datetime(2025, 6, 10))
    by_id = {s.customer_id: s for s in summaries}

    assert sorted(by_id) == ["A", "B", "C", "D"]
    a = by_id["A"]
    assert a.total_bank_payments_cents == 20000
    assert a.payment_count == 2
    assert a.last_payment_date == date(2025, 5, 20)
    assert a.total_cash_payments_cents == 5000
    assert a.cash_payment_count == 1
    assert a.current_debt_cents == 100000 + 50000 - 20000 - 5000
    assert a.customer_name == "Alpha LLC"
    assert by_id["B"].current_debt_cents == -3000
    assert by_id["C"].current_debt_cents == 7000
    assert by_id["C"].customer_name == "Charlie"
    assert by_id["D"].current_debt_cents == 1000
    for summary in summaries:
        assert_invariant(summary)


def test_classify_change():
    [summary] = compute_debt_summaries({}, [], {"C": DEBTS["C"]}, CUTOFF, "test", datetime(2025, 6, 10))
    later = compute_debt_summaries({}, [], {"C": DEBTS["C"]}, CUTOFF, "other", datetime(2025, 6, 11))[0]
    changed = compute_debt_summaries(
        {}, [payment("C", 100, date(2025, 5, 5), PaymentSource.MANUAL_CASH)], {"C": DEBTS["C"]}, CUTOFF, "x", datetime(2025, 6, 11)
    )[0]

    assert classify_change(None, summary) == "new"
    assert classify_change(summary, later) == "unchanged"
    assert classify_change(summary, changed) == "updated"


def seed_ledger(db: Session) -> None:
    PaymentRepository(db).save_all([PaymentRecord(**vars(p)) for p in LEDGER])


def test_aggregation_service_writes_every_summary(db: Session, config: ReconciliationConfig):
    seed_ledger(db)
    service = AggregationService(db, FakeSalesProvider(dict(SALES)), FakeDebtProvider(dict(DEBTS)), config)
    steps = []

    first = service.aggregate("manual", progress=lambda step, percent: steps.append(percent))
    second = service.aggregate("manual")

    assert steps == [20, 40, 60, 75, 90]
    assert (first.total_customers, first.new_count, first.updated_count, first.unchanged_count) == (4, 4, 0, 0)
    assert (second.new_count, second.updated_count, second.unchanged_count) == (0, 0, 4)
    stored = DebtSummaryRepository(db).get_all()
    assert [s.customer_id for s in stored] == ["A", "B", "C", "D"]
    assert all(s.update_source == "manual" for s in stored)
    for summary in stored:
        assert_invariant(summary)


@pytest.fixture
def orchestrator(db, session_factory, sales_provider, debt_provider, config):
    orch = AggregationOrchestrator(session_factory, sales_provider, debt_provider, config, max_workers=2, queue_capacity=2)
    yield orch
    orch.shutdown(wait=True)


def test_triggered_job_completes(db: Session, orchestrator, sales_provider, debt_provider):
    seed_ledger(db)
    sales_provider.totals = dict(SALES)
    debt_provider.debts = dict(DEBTS)

    job_id = orchestrator.trigger_aggregation("upload:bank-tbc")
    job = orchestrator.wait(job_id, timeout=10)

    assert job.status == JobStatus.COMPLETED
    assert job.progress_percent == 100
    assert job.source == "upload:bank-tbc"
    assert job.result.total_customers == 4
    assert job.started_at is not None and job.completed_at >= job.started_at
    db.expire_all()
    assert DebtSummaryRepository(db).get("A").current_debt_cents == 125000


def test_failed_job_leaves_prior_summaries_untouched(db: Session, orchestrator, sales_provider, debt_provider):
    seed_ledger(db)
    sales_provider.totals = dict(SALES)
    debt_provider.debts = dict(DEBTS)
    orchestrator.wait(orchestrator.trigger_aggregation("manual"), timeout=10)

    sales_provider.error = ExternalServiceError("Sales service timeout after 10.0s")
    job = orchestrator.wait(orchestrator.trigger_aggregation("manual"), timeout=10)

    assert job.status == JobStatus.FAILED
    assert job.error_message == "Sales service timeout after 10.0s"
    assert "ExternalServiceError" in job.error_details
    assert job.result is None
    db.expire_all()
    assert DebtSummaryRepository(db).get("A").current_debt_cents == 125000


def test_unknown_job_is_none(orchestrator):
    assert orchestrator.get_job_status("missing") is None


def test_saturated_pool_runs_job_on_caller_thread(db: Session, session_factory, config):
    entered = threading.Event()
    release = threading.Event()
    threads = []

    class BlockingSales(FakeSalesProvider):
        def get_all_sales_totals(self, cutoff_date):
            threads.append(threading.current_thread().name)
            if len(threads) == 1:
                entered.set()
                release.wait(timeout=10)
            return {}

    orch = AggregationOrchestrator(session_factory, BlockingSales(), FakeDebtProvider(), config, max_workers=1, queue_capacity=0)
    try:
        blocked_id = orch.trigger_aggregation("first")
        assert entered.wait(timeout=10)
        assert orch.get_job_status(blocked_id).status == JobStatus.RUNNING
        assert orch.get_job_status(blocked_id).current_step == "Loading sales"

        inline_id = orch.trigger_aggregation("second")

        assert orch.get_job_status(inline_id).status == JobStatus.COMPLETED
        assert threads[1] == threading.current_thread().name
        release.set()
        assert orch.wait(blocked_id, timeout=10).status == JobStatus.COMPLETED
        assert threads[0].startswith("agg-")
    finally:
        release.set()
        orch.shutdown(wait=True)


def test_trigger_after_shutdown_raises(db: Session, session_factory, config):
    orch = AggregationOrchestrator(session_factory, FakeSalesProvider(), FakeDebtProvider(), config)
    orch.shutdown()

    with pytest.raises(JobSubmissionError):
        orch.trigger_aggregation("manual")


def test_registry_compare_and_swap():
    registry = JobRegistry()
    job = registry.create("manual")

    assert not registry.transition(job.job_id, JobStatus.RUNNING, JobStatus.COMPLETED)
    assert registry.transition(job.job_id, JobStatus.PENDING, JobStatus.RUNNING, progress_percent=5)
    assert not registry.transition(job.job_id, JobStatus.PENDING, JobStatus.RUNNING)
    assert registry.update_progress(job.job_id, "Loading sales", 20)
    assert registry.transition(job.job_id, JobStatus.RUNNING, JobStatus.FAILED, error_message="boom")
    # Terminal records never change again
    assert not registry.transition(job.job_id, JobStatus.FAILED, JobStatus.RUNNING)
    assert not registry.update_progress(job.job_id, "Computing summaries", 75)
    record = registry.get(job.job_id)
    assert record.status == JobStatus.FAILED
    assert record.current_step == "Loading sales"
    assert record.error_message == "boom"


def test_registry_returns_copies():
    registry = JobRegistry()
    job = registry.create("manual")

    registry.get(job.job_id).status = JobStatus.COMPLETED

    assert registry.get(job.job_id).status == JobStatus.PENDING


def test_registry_evicts_oldest_terminal_records_first():
    registry = JobRegistry(max_records=3)
    done = registry.create("a")
    registry.transition(done.job_id, JobStatus.PENDING, JobStatus.COMPLETED)
    pending = registry.create("b")
    registry.create("c")

    registry.create("d")

    assert registry.get(done.job_id) is None
    assert registry.get(pending.job_id) is not None
    assert len(registry) == 3


def test_registry_evict_older_than():
    registry = JobRegistry()
    old = registry.create("old")
    registry.transition(old.job_id, JobStatus.PENDING, JobStatus.COMPLETED, completed_at=utc_now() - timedelta(hours=2))
    recent = registry.create("recent")
    registry.transition(recent.job_id, JobStatus.PENDING, JobStatus.COMPLETED, completed_at=utc_now())
    running = registry.create("running")

    assert registry.evict_older_than(60) == 1
    assert registry.get(old.job_id) is None
    assert registry.get(recent.job_id) is not None
    assert registry.get(running.job_id) is not None


def test_summary_store_save_get_delete(db: Session):
    repo = DebtSummaryRepository(db)
    [summary] = compute_debt_summaries({}, [], {"C": DEBTS["C"]}, CUTOFF, "manual", datetime(2025, 6, 10))

    repo.save(summary)

    assert repo.get("C").current_debt_cents == 7000
    assert repo.delete("C") is True
    assert repo.get("C") is None
    assert repo.delete("C") is False


def test_customer_dropped_from_every_source_loses_summary(db: Session, config: ReconciliationConfig):
    debts = FakeDebtProvider({"A": DEBTS["A"], "C": DEBTS["C"]})
    service = AggregationService(db, FakeSalesProvider(), debts, config)
    service.aggregate("first")

    del debts.debts["C"]
    result = service.aggregate("second")

    repo = DebtSummaryRepository(db)
    assert result.removed_count == 1
    assert result.total_customers == 1
    assert repo.get("C") is None
    assert [(s.customer_id, s.update_source) for s in repo.get_all()] == [("A", "second")]


def test_failed_summary_commit_keeps_prior_summaries(db: Session, session_factory, config: ReconciliationConfig):
    repo = DebtSummaryRepository(db)
    repo.save_all(compute_debt_summaries(
        {},
        [],
        {"A": StartingDebt("A", amount_cents=100), "B": StartingDebt("B", amount_cents=200)},
        CUTOFF,
        "seed",
        datetime(2025, 6, 1),
    ))

    def session_refusing_commit():
        session = session_factory()

        def refuse_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        session.commit = refuse_commit
        return session

    debts = FakeDebtProvider({"A": StartingDebt("A", amount_cents=999), "N": StartingDebt("N", amount_cents=5)})
    orch = AggregationOrchestrator(session_refusing_commit, FakeSalesProvider(), debts, config)
    try:
        job = orch.wait(orch.trigger_aggregation("manual"), timeout=10)
    finally:
        orch.shutdown(wait=True)

    assert job.status == JobStatus.FAILED
    assert job.error_message == "Failed to batch save debt summaries"
    assert job.result is None
    db.expire_all()
    assert {s.customer_id: s.current_debt_cents for s in repo.get_all()} == {"A": 100, "B": 200}


def test_session_factory_failure_marks_job_failed(config: ReconciliationConfig):
    def unreachable_database():
        raise OperationalError("connect", {}, Exception("could not connect to server"))

    orch = AggregationOrchestrator(unreachable_database, FakeSalesProvider(), FakeDebtProvider(), config)
    try:
        job = orch.wait(orch.trigger_aggregation("manual"), timeout=10)
    finally:
        orch.shutdown(wait=True)

    assert job.status == JobStatus.FAILED
    assert "could not connect to server" in job.error_message
    assert job.completed_at is not None
