"""GET /v1/summaries - read-optimized per-customer debt"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from debt_reconciler.api.v1.schemas import DebtSummaryListResponse, DebtSummaryResponse
from debt_reconciler.infrastructure.database.session import get_db
from debt_reconciler.infrastructure.database.repositories import DebtSummaryRepository

router = APIRouter()


@router.get("/summaries", response_model=DebtSummaryListResponse)
def list_summaries(db: Session = Depends(get_db)):
    """
    All customer debt summaries as of the last completed aggregation.

    Returns:
        Summaries ordered by customer id, with the portfolio total
    """
    summaries = DebtSummaryRepository(db).get_all()
    return DebtSummaryListResponse(
        total_customers=len(summaries),
        total_debt_cents=sum(s.current_debt_cents for s in summaries),
        summaries=[DebtSummaryResponse.model_validate(s) for s in summaries],
    )


@router.get("/summaries/{customer_id}", response_model=DebtSummaryResponse)
def get_summary(customer_id: str, db: Session = Depends(get_db)):
    summary = DebtSummaryRepository(db).get(customer_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Summary not found")
    return DebtSummaryResponse.model_validate(summary)
