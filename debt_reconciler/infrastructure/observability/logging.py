"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from debt_reconciler.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(threadName)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_upload(
    source: str,
    validate_only: bool,
    total_rows: int,
    added: int,
    duplicates: int,
    before_window: int,
    skipped: int,
    validation_difference_cents: int,
    job_id: Optional[str] = None,
) -> None:
    """Log structured upload outcome for reconciliation audits"""
    logging.info(
        "Upload processed",
        extra={
            "step": "upload_complete",
            "source": source,
            "mode": "validate" if validate_only else "ingest",
            "total_rows": total_rows,
            "added": added,
            "duplicates": duplicates,
            "before_window": before_window,
            "skipped": skipped,
            "validation_difference_cents": validation_difference_cents,
            "aggregation_job_id": job_id,
        },
    )


def log_aggregation(
    job_id: str,
    source: str,
    status: str,
    duration_ms: float,
    total_customers: Optional[int] = None,
    error: Optional[str] = None,
) -> None:
    """Log the terminal state of an aggregation job"""
    level = logging.ERROR if error else logging.INFO
    logging.log(
        level,
        "Aggregation job finished",
        extra={
            "step": "aggregation_complete",
            "job_id": job_id,
            "trigger_source": source,
            "status": status,
            "duration_ms": duration_ms,
            "total_customers": total_customers,
            "error": error,
        },
    )


def log_deduplication(
    total_payments: int,
    duplicate_groups: int,
    deleted: int,
    amount_recovered_cents: int,
    dry_run: bool,
) -> None:
    logging.info(
        "Duplicate scan completed",
        extra={
            "step": "dedup_analyze" if dry_run else "dedup_remove",
            "total_payments": total_payments,
            "duplicate_groups": duplicate_groups,
            "deleted": deleted,
            "amount_recovered_cents": amount_recovered_cents,
        },
    )
