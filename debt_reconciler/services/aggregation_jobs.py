"""Background aggregation jobs: status registry and bounded worker pool"""

import logging
import threading
import time
import traceback
import uuid
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import replace
from datetime import timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from debt_reconciler.config import ReconciliationConfig
from debt_reconciler.domain.exceptions import JobSubmissionError
from debt_reconciler.domain.models import AggregationJob, JobStatus
from debt_reconciler.domain.providers import SalesTotalsProvider, StartingDebtProvider
from debt_reconciler.infrastructure.observability.logging import log_aggregation
from debt_reconciler.infrastructure.observability.metrics import aggregation_caller_runs_counter, record_aggregation
from debt_reconciler.services.aggregation_service import AggregationService
from debt_reconciler.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


class JobRegistry:
    """
    Thread-safe job id -> record map.

    Records are only changed through transition() (compare-and-swap on status)
    and update_progress(); readers get copies. Terminal records never change.
    When full, the oldest terminal records are evicted first.
    """

    def __init__(self, max_records: int = 500):
        self.max_records = max_records
        self._jobs: "OrderedDict[str, AggregationJob]" = OrderedDict()
        self._lock = threading.Lock()

    def create(self, source: str) -> AggregationJob:
        job = AggregationJob(
            job_id=str(uuid.uuid4()),
            status=JobStatus.PENDING,
            source=source,
            created_at=utc_now(),
        )
        with self._lock:
            self._jobs[job.job_id] = job
            self._enforce_capacity()
            return replace(job)

    def _enforce_capacity(self) -> None:
        overflow = len(self._jobs) - self.max_records
        if overflow <= 0:
            return
        terminal = [job_id for job_id, job in self._jobs.items() if job.status.is_terminal]
        for job_id in terminal[:overflow]:
            del self._jobs[job_id]

    def get(self, job_id: str) -> Optional[AggregationJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job else None

    def transition(self, job_id: str, expected: JobStatus, new: JobStatus, **fields) -> bool:
        """Move job_id from expected to new; False when it is not in the expected state"""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status is not expected or job.status.is_terminal:
                return False
            job.status = new
            for name, value in fields.items():
                setattr(job, name, value)
            return True

    def update_progress(self, job_id: str, step: str, percent: int) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status is not JobStatus.RUNNING:
                return False
            job.current_step = step
            job.progress_percent = percent
            return True

    def evict_older_than(self, minutes: int) -> int:
        """Drop terminal records completed more than `minutes` ago"""
        threshold = utc_now() - timedelta(minutes=minutes)
        with self._lock:
            stale = [
                job_id
                for job_id, job in self._jobs.items()
                if job.status.is_terminal and job.completed_at is not None and job.completed_at < threshold
            ]
            for job_id in stale:
                del self._jobs[job_id]
        if stale:
            logger.info("Evicted %s aggregation job records", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


class AggregationOrchestrator:
    """
    Runs AggregationService on a bounded thread pool.

    max_workers jobs run at once and queue_capacity more may wait. When every
    slot is taken the job runs on the triggering thread instead.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        sales_provider: SalesTotalsProvider,
        debt_provider: StartingDebtProvider,
        config: ReconciliationConfig,
        max_workers: int = 5,
        queue_capacity: int = 25,
        registry: Optional[JobRegistry] = None,
    ):
        self.session_factory = session_factory
        self.sales_provider = sales_provider
        self.debt_provider = debt_provider
        self.config = config
        self.registry = registry or JobRegistry()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="agg-")
        self._slots = threading.BoundedSemaphore(max_workers + queue_capacity)
        self._futures: Dict[str, Future] = {}
        self._futures_lock = threading.Lock()

    def trigger_aggregation(self, source: str) -> str:
        """
        Create a PENDING job and schedule it.

        Returns the job id; poll get_job_status() for the outcome.

        Raises:
            JobSubmissionError: the pool is shut down
        """
        job = self.registry.create(source)

        if not self._slots.acquire(blocking=False):
            logger.warning("Aggregation pool saturated, running job %s on caller thread", job.job_id)
            aggregation_caller_runs_counter.inc()
            self._run_job(job.job_id)
            return job.job_id

        try:
            future = self._executor.submit(self._run_job, job.job_id)
        except RuntimeError as e:
            self._slots.release()
            self.registry.transition(
                job.job_id,
                JobStatus.PENDING,
                JobStatus.FAILED,
                completed_at=utc_now(),
                current_step="Failed",
                error_message="Aggregation pool is shut down",
            )
            raise JobSubmissionError(f"Could not submit aggregation job {job.job_id}") from e

        with self._futures_lock:
            self._futures[job.job_id] = future
        future.add_done_callback(lambda _: self._release(job.job_id))
        logger.info("Aggregation job %s queued (source=%s)", job.job_id, source)
        return job.job_id

    def _release(self, job_id: str) -> None:
        self._slots.release()
        with self._futures_lock:
            self._futures.pop(job_id, None)

    def get_job_status(self, job_id: str) -> Optional[AggregationJob]:
        return self.registry.get(job_id)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[AggregationJob]:
        """Block until the job finishes or the timeout passes, then return its record"""
        with self._futures_lock:
            future = self._futures.get(job_id)
        if future is not None:
            wait_futures([future], timeout=timeout)
        return self.registry.get(job_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run_job(self, job_id: str) -> None:
        started_at = utc_now()
        if not self.registry.transition(
            job_id,
            JobStatus.PENDING,
            JobStatus.RUNNING,
            started_at=started_at,
            current_step="Starting aggregation",
            progress_percent=5,
        ):
            logger.warning("Aggregation job %s is not pending, skipping", job_id)
            return

        job = self.registry.get(job_id)
        start = time.monotonic()
        db = None
        try:
            db = self.session_factory()
            service = AggregationService(db, self.sales_provider, self.debt_provider, self.config)
            result = service.aggregate(
                job.source,
                progress=lambda step, percent: self.registry.update_progress(job_id, step, percent),
            )
        except Exception as e:
            # Job failures are recorded on the job, never raised to the trigger caller
            duration = time.monotonic() - start
            self.registry.transition(
                job_id,
                JobStatus.RUNNING,
                JobStatus.FAILED,
                completed_at=utc_now(),
                current_step="Failed",
                error_message=str(e) or type(e).__name__,
                error_details=traceback.format_exc(),
            )
            record_aggregation(JobStatus.FAILED, duration)
            log_aggregation(job_id, job.source, JobStatus.FAILED.value, duration * 1000, error=str(e))
            logger.error("Aggregation job %s failed: %s", job_id, e, exc_info=True)
            return
        finally:
            if db is not None:
                db.close()

        duration = time.monotonic() - start
        self.registry.transition(
            job_id,
            JobStatus.RUNNING,
            JobStatus.COMPLETED,
            completed_at=utc_now(),
            current_step="Completed",
            progress_percent=100,
            result=result,
        )
        record_aggregation(JobStatus.COMPLETED, duration)
        log_aggregation(job_id, job.source, JobStatus.COMPLETED.value, duration * 1000, result.total_customers)
