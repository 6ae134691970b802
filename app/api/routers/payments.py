# app/api/routers/payments.py
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from app.api.dependencies import get_orchestrator
from app.services.workflow import WorkflowOrchestrator

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/success")
def payment_success(
    payment_id: str | None = Query(default=None),
    return_url: str | None = Query(default=None, alias="returnUrl"),
    workflow: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """
    Powrot z bramki po udanej platnosci: przekierowanie na returnUrl z purchaseSuccess=1.
    Brak albo zly payment_id -> strona glowna.
    """
    target = workflow.payment_succeeded(payment_id, return_url)
    return RedirectResponse(url=target, status_code=303)


@router.get("/cancel")
def payment_cancel(
    payment_id: str | None = Query(default=None),
    return_url: str | None = Query(default=None, alias="returnUrl"),
    workflow: WorkflowOrchestrator = Depends(get_orchestrator),
):
    target = workflow.payment_cancelled(payment_id, return_url)
    return RedirectResponse(url=target, status_code=303)
