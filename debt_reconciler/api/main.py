"""FastAPI application factory"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.orm import Session
from starlette.responses import Response

from debt_reconciler.api.middleware import RequestIDMiddleware, MetricsMiddleware
from debt_reconciler.api.v1 import aggregation, payments, summaries
from debt_reconciler.config import ReconciliationConfig, settings
from debt_reconciler.domain.providers import CustomerNameResolver, SalesTotalsProvider, StartingDebtProvider
from debt_reconciler.infrastructure.clients.config_service import CustomerNameClient, StartingDebtClient
from debt_reconciler.infrastructure.clients.sales import SalesClient
from debt_reconciler.infrastructure.database.models import Base
from debt_reconciler.infrastructure.database.session import SessionLocal, engine
from debt_reconciler.infrastructure.observability.logging import setup_logging
from debt_reconciler.services.aggregation_jobs import AggregationOrchestrator, JobRegistry

# Setup structured logging
setup_logging(settings.log_level)


def create_app(
    session_factory: Optional[Callable[[], Session]] = None,
    sales_provider: Optional[SalesTotalsProvider] = None,
    debt_provider: Optional[StartingDebtProvider] = None,
    name_resolver: Optional[CustomerNameResolver] = None,
    config: Optional[ReconciliationConfig] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Collaborators default to the HTTP clients and the configured database;
    tests pass their own.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if session_factory is None:
            Base.metadata.create_all(bind=engine)
        yield
        app.state.orchestrator.shutdown(wait=True)

    app = FastAPI(
        title="Debt Reconciler",
        description="Payment reconciliation and customer debt aggregation service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    config = config or settings.reconciliation_config()
    app.state.reconciliation_config = config
    app.state.name_resolver = name_resolver or CustomerNameClient()
    app.state.orchestrator = AggregationOrchestrator(
        session_factory=session_factory or SessionLocal,
        sales_provider=sales_provider or SalesClient(),
        debt_provider=debt_provider or StartingDebtClient(),
        config=config,
        max_workers=settings.aggregation_max_workers,
        queue_capacity=settings.aggregation_queue_capacity,
        registry=JobRegistry(max_records=settings.job_retention_max),
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(aggregation.router, prefix="/v1", tags=["aggregation"])
    app.include_router(summaries.router, prefix="/v1", tags=["summaries"])

    return app


app = create_app()
