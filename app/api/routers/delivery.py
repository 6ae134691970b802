# app/api/routers/delivery.py
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from app.api.dependencies import get_delivery
from app.domain.enums import PageMessageType
from app.domain.schemas import ChatStateChange, NotificationClickIn, NotificationClickOut, PushPayload
from app.services.delivery_gate import WebSocketPage
from app.services.workflow import WorkflowOrchestrator
from app.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/delivery", tags=["delivery"])


@router.websocket("/{user_id}/ws")
async def page_socket(websocket: WebSocket, user_id: str):
    """
    Otwarta strona uzytkownika.
    Strona -> serwer: CHAT_STATE_CHANGE, serwer -> strona: FCM_MESSAGE.
    """
    gate = websocket.app.state.gates.get(user_id)
    page = WebSocketPage(websocket)
    gate.attach(page)

    try:
        await websocket.accept()
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict) or message.get("type") != PageMessageType.CHAT_STATE_CHANGE.value:
                logger.info(f"Ignoring page message from {page.id}: {message!r}")
                continue
            try:
                change = ChatStateChange.model_validate(message)
            except ValidationError as e:
                logger.warning(f"Malformed chat state change from page {page.id}: {e}")
                continue
            gate.post_chat_state(change, page.id)
    except WebSocketDisconnect:
        logger.info(f"Page {page.id} of user {user_id} disconnected")
    finally:
        gate.page_closed(page.id)


@router.post("/{user_id}/push", status_code=202)
async def push_received(
    user_id: str,
    payload: PushPayload,
    workflow: WorkflowOrchestrator = Depends(get_delivery),
):
    """Wiadomosc push dla uzytkownika, decyzja o powiadomieniu zapada w kolejce gate."""
    workflow.push_received(user_id, payload)
    return {"accepted": True}


@router.post("/{user_id}/chat-state", status_code=202)
async def chat_state_changed(
    user_id: str,
    change: ChatStateChange,
    workflow: WorkflowOrchestrator = Depends(get_delivery),
):
    workflow.chat_state_changed(user_id, change)
    return {"accepted": True}


@router.post("/{user_id}/notifications/click", response_model=NotificationClickOut)
async def notification_clicked(
    user_id: str,
    click: NotificationClickIn,
    workflow: WorkflowOrchestrator = Depends(get_delivery),
):
    navigate_to = await workflow.notification_clicked(user_id, click)
    return NotificationClickOut(navigate_to=navigate_to)


@router.get("/{user_id}/notifications/visible")
async def visible_notifications(
    user_id: str,
    workflow: WorkflowOrchestrator = Depends(get_delivery),
):
    return await workflow.visible_notifications(user_id)
