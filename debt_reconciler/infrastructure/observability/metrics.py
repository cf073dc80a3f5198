"""Prometheus metrics for uploads, aggregation jobs, and deduplication"""

from prometheus_client import Counter, Histogram

from debt_reconciler.domain.models import JobStatus, UploadReport

# Upload metrics
upload_counter = Counter(
    "debt_upload_total",
    "Spreadsheet uploads processed",
    ["source", "mode"],  # mode: ingest | validate
)

upload_row_counter = Counter(
    "debt_upload_rows_total",
    "Spreadsheet rows by classification",
    ["source", "status"],  # added | duplicate | before-window | invalid
)

manual_payment_counter = Counter(
    "debt_manual_cash_payments_total",
    "Hand-entered cash payments recorded",
)

# Aggregation metrics
aggregation_job_counter = Counter(
    "debt_aggregation_jobs_total",
    "Aggregation jobs by final status",
    ["status"],  # COMPLETED | FAILED
)

aggregation_duration_histogram = Histogram(
    "debt_aggregation_duration_seconds",
    "Time to recompute all debt summaries",
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

aggregation_caller_runs_counter = Counter(
    "debt_aggregation_caller_runs_total",
    "Aggregation jobs run on the triggering thread because the pool was full",
)

# Deduplication metrics
duplicates_deleted_counter = Counter(
    "debt_duplicate_payments_deleted_total",
    "Duplicate ledger payments removed",
)

# Collaborator metrics
external_call_failures_counter = Counter(
    "debt_external_call_failures_total",
    "Failed calls to collaborator services",
    ["service"],  # sales | config
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_upload(report: UploadReport) -> None:
    """Record row classification counts for one upload"""
    mode = "validate" if report.validate_only else "ingest"
    upload_counter.labels(source=report.source, mode=mode).inc()

    for status, count in (
        ("added", report.added_count),
        ("duplicate", report.duplicate_count),
        ("before-window", report.before_window_count),
        ("invalid", report.skipped_count),
    ):
        if count:
            upload_row_counter.labels(source=report.source, status=status).inc(count)


def record_aggregation(status: JobStatus, duration_seconds: float) -> None:
    aggregation_job_counter.labels(status=status.value).inc()
    aggregation_duration_histogram.observe(duration_seconds)
