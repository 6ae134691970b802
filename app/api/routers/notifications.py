# app/api/routers/notifications.py
from fastapi import APIRouter, Depends, HTTPException

from app.api.dependencies import get_orchestrator
from app.services.workflow import WorkflowOrchestrator

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _unwrap(result):
    if not result.ok:
        raise HTTPException(status_code=result.http_status, detail=result.to_dict())
    return result.to_dict()


@router.get("/")
def list_notifications(workflow: WorkflowOrchestrator = Depends(get_orchestrator)):
    return _unwrap(workflow.list_notifications())


@router.patch("/read-all")
def mark_all_read(workflow: WorkflowOrchestrator = Depends(get_orchestrator)):
    return _unwrap(workflow.mark_all_notifications_read())


@router.patch("/{notification_id}/read")
def mark_read(notification_id: str, workflow: WorkflowOrchestrator = Depends(get_orchestrator)):
    return _unwrap(workflow.mark_notification_read(notification_id))
