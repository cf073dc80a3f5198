"""/v1/aggregation - manual trigger and job status polling"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from debt_reconciler.api.v1.schemas import AggregationJobResponse, AggregationTriggerResponse
from debt_reconciler.api.dependencies import get_orchestrator, get_request_id
from debt_reconciler.domain.exceptions import JobSubmissionError
from debt_reconciler.services.aggregation_jobs import AggregationOrchestrator

router = APIRouter()


@router.post("/aggregation/trigger", response_model=AggregationTriggerResponse, status_code=202)
def trigger_aggregation(
    request: Request,
    orchestrator: AggregationOrchestrator = Depends(get_orchestrator),
):
    """Recompute every debt summary in the background; poll the returned job id"""
    try:
        job_id = orchestrator.trigger_aggregation("manual")
    except JobSubmissionError as e:
        logging.error(f"Aggregation trigger failed: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=503, detail="Aggregation is unavailable")

    job = orchestrator.get_job_status(job_id)
    return AggregationTriggerResponse(
        job_id=job_id,
        status=job.status,
        message=f"Aggregation job {job.status.value.lower()}",
    )


@router.get("/aggregation/jobs/{job_id}", response_model=AggregationJobResponse)
def get_aggregation_job(
    job_id: str,
    orchestrator: AggregationOrchestrator = Depends(get_orchestrator),
):
    job = orchestrator.get_job_status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return AggregationJobResponse.model_validate(job)
