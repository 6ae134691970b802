# app/api/routers/bids.py
from fastapi import APIRouter, Depends, HTTPException

from app.api.dependencies import get_orchestrator
from app.domain.schemas import BidIn
from app.services.workflow import WorkflowOrchestrator

router = APIRouter(prefix="/listings", tags=["bids"])


@router.post("/{listing_id}/bids", status_code=201)
def place_bid(
    listing_id: str,
    payload: BidIn,
    workflow: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """
    Sklada oferte na aukcji. Po akceptacji zwraca odswiezona oferte i liste ofert.
    """
    result = workflow.place_bid(listing_id, payload.amount, payload.bidder_company_id)
    if not result.ok:
        raise HTTPException(status_code=result.http_status, detail=result.to_dict())
    return result.to_dict()
