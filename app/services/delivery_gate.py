# app/services/delivery_gate.py
import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple
from urllib.parse import urlencode

from app.domain.enums import PageMessageType
from app.domain.schemas import ChatStateChange, PushData, PushPayload, SystemNotification
from app.services.notification_service import NotificationService
from app.utils.logging import get_logger
from app.utils.urls import ROOT_URL

logger = get_logger(__name__)

DEFAULT_TITLE = "New Message"
DEFAULT_BODY = "You have a new message"
DEFAULT_ICON = "/logo.png"
CHATS_PATH = "/chats"

_CHAT_STATE = "chat_state"
_PUSH = "push"
_PAGE_GONE = "page_gone"


def chat_tag(chat_id: str) -> str:
    return f"chat-{chat_id}"


def build_system_notification(payload: PushPayload) -> SystemNotification:
    content = payload.notification
    chat_id = payload.chat_id
    return SystemNotification(
        title=(content.title if content else None) or DEFAULT_TITLE,
        body=(content.body if content else None) or payload.data.content or DEFAULT_BODY,
        icon=(content.icon if content else None) or DEFAULT_ICON,
        badge=DEFAULT_ICON,
        tag=chat_tag(chat_id) if chat_id else None,
        data=payload.data.model_dump(by_alias=True, exclude_none=True),
    )


def click_target(data: PushData | None) -> str:
    if data is not None and data.chat_id:
        return f"{CHATS_PATH}?{urlencode({'chatId': data.chat_id})}"
    return ROOT_URL


class WebSocketPage:
    """Otwarta strona podlaczona przez websocket."""

    def __init__(self, websocket, page_id: str | None = None):
        self.websocket = websocket
        self.id = page_id or uuid.uuid4().hex

    async def send(self, message: Dict[str, Any]) -> None:
        await self.websocket.send_json(message)


@dataclass
class DeliveryDecision:
    chat_id: str | None
    suppressed: bool
    notification: SystemNotification | None
    forwarded: int
    failed: int


class DeliveryGate:
    """
    Kontekst dostarczania powiadomien jednego uzytkownika.
    Zdarzenia (zmiana czatu, push) ida przez jedna kolejke i sa przetwarzane
    po kolei w jednym tasku, wiec marker czytany jest zawsze aktualny.
    """

    def __init__(
        self,
        user_id: str,
        notifier: NotificationService,
        on_idle: Callable[["DeliveryGate"], None] | None = None,
    ):
        self.user_id = user_id
        self.notifier = notifier
        self.on_idle = on_idle
        self.active_chat_id: str | None = None
        self.marker_page_id: str | None = None
        self.pages: Dict[str, Any] = {}
        self._inbox: asyncio.Queue[Tuple[str, Any]] = asyncio.Queue()
        self._task: asyncio.Task | None = None

    # pages
    def attach(self, page) -> None:
        self.pages[page.id] = page
        logger.info(f"Page {page.id} attached to delivery gate of user {self.user_id}")

    def detach(self, page_id: str) -> None:
        if self.pages.pop(page_id, None) is not None:
            logger.info(f"Page {page_id} detached from delivery gate of user {self.user_id}")

    # inbox
    def post_chat_state(self, change: ChatStateChange, page_id: str | None = None) -> None:
        self._inbox.put_nowait((_CHAT_STATE, (change, page_id)))

    def post_push(self, payload: PushPayload) -> None:
        self._inbox.put_nowait((_PUSH, payload))

    def page_closed(self, page_id: str) -> None:
        """Strona zamknieta: odpinamy ja, marker czyscimy w kolejce (po wczesniejszych zdarzeniach)."""
        self.detach(page_id)
        self._inbox.put_nowait((_PAGE_GONE, page_id))

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name=f"delivery-gate-{self.user_id}")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.drain()

    @property
    def idle(self) -> bool:
        """Nic do zgubienia: brak stron, markera i zdarzen w kolejce."""
        return not self.pages and self.active_chat_id is None and self._inbox.empty()

    async def run(self) -> None:
        while True:
            kind, body = await self._inbox.get()
            await self._handle(kind, body)
            if self.idle and self.on_idle is not None:
                self.on_idle(self)
                return

    async def drain(self) -> None:
        """Przetwarza wszystko co czeka w kolejce (bez uruchomionego taska)."""
        while not self._inbox.empty():
            kind, body = self._inbox.get_nowait()
            await self._handle(kind, body)

    async def _handle(self, kind: str, body: Any) -> None:
        try:
            await self._dispatch(kind, body)
        except Exception:
            logger.exception(f"Delivery gate of user {self.user_id} failed on {kind} event")
        finally:
            self._inbox.task_done()

    async def _dispatch(self, kind: str, body: Any) -> None:
        if kind == _CHAT_STATE:
            change, page_id = body
            self.apply_chat_state(change, page_id)
        elif kind == _PAGE_GONE:
            if body is not None and self.marker_page_id == body:
                self.apply_chat_state(ChatStateChange(chat_id=None))
        elif kind == _PUSH:
            await self.deliver(body)

    # handlers
    def apply_chat_state(self, change: ChatStateChange, page_id: str | None = None) -> None:
        self.active_chat_id = change.chat_id or None
        self.marker_page_id = page_id if self.active_chat_id else None
        logger.info(f"Active chat of user {self.user_id} changed: {self.active_chat_id}")

    async def deliver(self, payload: PushPayload) -> DeliveryDecision:
        chat_id = payload.chat_id
        suppressed = self.active_chat_id is not None and chat_id == self.active_chat_id
        notification = None

        if suppressed:
            logger.info(f"User {self.user_id} is in chat {chat_id}, skipping notification")
        else:
            notification = build_system_notification(payload)
            try:
                await asyncio.to_thread(self.notifier.show_system_notification, self.user_id, notification)
            except Exception as e:
                # decyzja juz podjeta, strony i tak dostaja wiadomosc
                logger.error(f"Failed to raise notification for user {self.user_id}: {e}")

        forwarded, failed = await self.forward(payload)
        return DeliveryDecision(
            chat_id=chat_id,
            suppressed=suppressed,
            notification=notification,
            forwarded=forwarded,
            failed=failed,
        )

    async def forward(self, payload: PushPayload) -> Tuple[int, int]:
        message = {
            "type": PageMessageType.FCM_MESSAGE.value,
            "payload": payload.model_dump(by_alias=True, exclude_none=True),
        }
        pages = list(self.pages.values())
        logger.info(f"Sending message to {len(pages)} page(s) of user {self.user_id}")

        results = await asyncio.gather(*(page.send(message) for page in pages), return_exceptions=True)

        failed = 0
        for page, result in zip(pages, results):
            if isinstance(result, Exception):
                failed += 1
                logger.warning(f"Forwarding to page {page.id} failed: {result}")
                self.detach(page.id)
        return len(pages) - failed, failed

    async def click(self, data: PushData | None, tag: str | None = None) -> str:
        """Klik w powiadomienie: najpierw zamkniecie, potem adres nawigacji."""
        tag = tag or (chat_tag(data.chat_id) if data is not None and data.chat_id else None)
        if tag:
            await asyncio.to_thread(self.notifier.dismiss, self.user_id, tag)
        return click_target(data)


class GateRegistry:
    """Jeden DeliveryGate na uzytkownika, tworzony leniwie."""

    def __init__(self, notifier: NotificationService | None = None):
        self.notifier = notifier
        self.gates: Dict[str, DeliveryGate] = {}

    def get(self, user_id: str) -> DeliveryGate:
        gate = self.gates.get(user_id)
        if gate is None:
            if self.notifier is None:
                self.notifier = NotificationService()
            gate = DeliveryGate(user_id, self.notifier, on_idle=self._evict)
            self.gates[user_id] = gate
        gate.start()
        return gate

    def _evict(self, gate: DeliveryGate) -> None:
        if self.gates.get(gate.user_id) is gate:
            del self.gates[gate.user_id]
            logger.info(f"Delivery gate of user {gate.user_id} is idle, evicted")

    async def shutdown(self) -> None:
        for gate in list(self.gates.values()):
            await gate.stop()
        self.gates.clear()
