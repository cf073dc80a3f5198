"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from debt_reconciler.config import ReconciliationConfig
from debt_reconciler.infrastructure.database.session import get_db
from debt_reconciler.services.aggregation_jobs import AggregationOrchestrator
from debt_reconciler.services.deduplication_service import DeduplicationService
from debt_reconciler.services.ingestion_service import IngestionPipeline
from debt_reconciler.services.payment_status_service import PaymentStatusService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_config(request: Request) -> ReconciliationConfig:
    return request.app.state.reconciliation_config


def get_orchestrator(request: Request) -> AggregationOrchestrator:
    """Provide the application-wide aggregation orchestrator"""
    return request.app.state.orchestrator


def get_pipeline(
    request: Request,
    db: Session = Depends(get_db),
    config: ReconciliationConfig = Depends(get_config),
    orchestrator: AggregationOrchestrator = Depends(get_orchestrator),
) -> IngestionPipeline:
    """Provide an ingestion pipeline bound to the request session"""
    return IngestionPipeline(
        db,
        config,
        trigger_aggregation=orchestrator.trigger_aggregation,
        name_resolver=request.app.state.name_resolver,
    )


def get_deduplication_service(
    db: Session = Depends(get_db),
    config: ReconciliationConfig = Depends(get_config),
    orchestrator: AggregationOrchestrator = Depends(get_orchestrator),
) -> DeduplicationService:
    return DeduplicationService(db, config, trigger_aggregation=orchestrator.trigger_aggregation)


def get_payment_status_service(
    db: Session = Depends(get_db),
    config: ReconciliationConfig = Depends(get_config),
) -> PaymentStatusService:
    return PaymentStatusService(db, config)
