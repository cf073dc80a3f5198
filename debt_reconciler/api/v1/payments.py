"""/v1/payments - statement uploads, manual cash entries, ledger queries, deduplication"""

import logging
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile

from debt_reconciler.api.v1.schemas import (
    DuplicateReportResponse,
    ManualCashPaymentRequest,
    PaymentResponse,
    PaymentStatusMapResponse,
    PaymentStatusResponse,
    UploadReportResponse,
)
from debt_reconciler.api.dependencies import (
    get_config,
    get_deduplication_service,
    get_payment_status_service,
    get_pipeline,
    get_request_id,
)
from debt_reconciler.config import ReconciliationConfig
from debt_reconciler.domain.exceptions import (
    ConflictError,
    PersistenceError,
    StructuralUploadError,
    ValidationError,
)
from debt_reconciler.domain.models import PaymentSource
from debt_reconciler.services.deduplication_service import DeduplicationService
from debt_reconciler.services.ingestion_service import IngestionPipeline
from debt_reconciler.services.payment_status_service import PaymentStatusService

router = APIRouter()


@router.post("/payments/upload", response_model=UploadReportResponse)
def upload_statement(
    request: Request,
    file: UploadFile = File(...),
    source: str = Form(..., description="bank-tbc | bank-bog | manual-cash"),
    validate_only: bool = Form(False),
    pipeline: IngestionPipeline = Depends(get_pipeline),
    config: ReconciliationConfig = Depends(get_config),
):
    """
    Upload a bank statement or manual cash workbook.

    Flow:
    1. Reject malformed files outright
    2. Classify every row as added, duplicate, before-window or invalid
    3. Persist added rows (skipped in validate-only mode)
    4. Trigger a background aggregation job when rows were added
    """
    request_id = get_request_id(request)
    # One byte past the limit is enough to reject an oversized file
    file_bytes = file.file.read(config.max_upload_bytes + 1)

    try:
        report = pipeline.ingest(file_bytes, source, validate_only=validate_only, filename=file.filename)
    except (ValidationError, StructuralUploadError) as e:
        logging.warning(f"Upload rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        logging.error(f"Upload failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to save payments")

    return UploadReportResponse.model_validate(report)


@router.post("/payments/manual", response_model=PaymentResponse, status_code=201)
def create_manual_cash_payment(
    body: ManualCashPaymentRequest,
    request: Request,
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Record a single cash payment entered by hand"""
    request_id = get_request_id(request)
    try:
        record = pipeline.record_cash_payment(
            customer_id=body.customer_id,
            amount=body.amount,
            payment_date=body.payment_date,
            description=body.description,
            customer_name=body.customer_name,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConflictError as e:
        logging.warning(f"Manual payment conflict: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceError as e:
        logging.error(f"Manual payment failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to save payment")

    return PaymentResponse.model_validate(record)


@router.get("/payments", response_model=List[PaymentResponse])
def list_payments(
    customer_id: Optional[str] = Query(None),
    source: Optional[PaymentSource] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Ledger payments matching all given filters (dates inclusive)"""
    records = pipeline.list_payments(customer_id, source, start_date, end_date)
    return [PaymentResponse.model_validate(r) for r in records]


@router.get("/payments/status", response_model=PaymentStatusMapResponse)
def get_payment_status(service: PaymentStatusService = Depends(get_payment_status_service)):
    """Days since last payment and warning color per customer"""
    statuses = service.calculate_status()
    return {cid: PaymentStatusResponse.model_validate(s) for cid, s in statuses.items()}


@router.get("/payments/duplicates", response_model=DuplicateReportResponse)
def analyze_duplicates(service: DeduplicationService = Depends(get_deduplication_service)):
    """Report duplicate ledger payments without deleting anything"""
    return DuplicateReportResponse.model_validate(service.analyze())


@router.post("/payments/duplicates/remove", response_model=DuplicateReportResponse)
def remove_duplicates(
    request: Request,
    service: DeduplicationService = Depends(get_deduplication_service),
):
    """Delete duplicate ledger payments, keeping the first upload of each"""
    try:
        report = service.remove()
    except PersistenceError as e:
        logging.error(f"Duplicate removal failed: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=500, detail="Failed to remove duplicates")
    return DuplicateReportResponse.model_validate(report)
