# app/api/routers/checkout.py
from fastapi import APIRouter, Depends, HTTPException

from app.api.dependencies import get_orchestrator
from app.domain.schemas import CheckoutIn
from app.services.workflow import WorkflowOrchestrator

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/", status_code=201)
def start_checkout(
    payload: CheckoutIn,
    workflow: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """
    Tworzy zamowienie, rekord platnosci i sesje w bramce.
    Zwraca checkout_url, na ktory przegladarka ma przejsc.
    """
    result = workflow.start_checkout(payload)
    if not result.ok:
        raise HTTPException(status_code=result.http_status, detail=result.to_dict())
    return result.to_dict()


@router.get("/{attempt_id}")
def get_checkout(
    attempt_id: int,
    workflow: WorkflowOrchestrator = Depends(get_orchestrator),
):
    found = workflow.coordinator.get_session(attempt_id)
    if found is None:
        raise HTTPException(status_code=404, detail="Checkout attempt not found")
    state, session = found
    return {"attempt_id": attempt_id, "state": state, "session": session}
