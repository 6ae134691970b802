# app/services/notification_service.py
import json
import uuid
from typing import Any, Dict, List

import redis

from app.celery_worker import celery_app
from app.domain.schemas import SystemNotification
from app.utils.logging import get_logger
from app.utils.retry import redis_retry
from app.utils.settings import REDIS_URL

logger = get_logger(__name__)


class NotificationTray:
    """
    Widoczne powiadomienia systemowe uzytkownika.
    Hash redis, pole = tag, wiec kolejne wiadomosci z tego samego czatu
    nadpisuja jedno powiadomienie zamiast dokladac nowe.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(user_id: str) -> str:
        return f"notifications:{user_id}:visible"

    @redis_retry()
    def show(self, user_id: str, notification: Dict[str, Any]) -> str:
        tag = notification.get("tag") or f"notification-{uuid.uuid4().hex}"
        self.redis.hset(self._key(user_id), tag, json.dumps({**notification, "tag": tag}))
        return tag

    @redis_retry()
    def dismiss(self, user_id: str, tag: str) -> bool:
        return bool(self.redis.hdel(self._key(user_id), tag))

    @redis_retry()
    def visible(self, user_id: str) -> List[Dict[str, Any]]:
        raw = self.redis.hgetall(self._key(user_id))
        return [json.loads(value) for value in raw.values()]


tray = NotificationTray()


class NotificationService:
    """
    Serwis do wyswietlania powiadomien systemowych.
    Wyswietlenie idzie przez Celery, zamkniecie synchronicznie (przed nawigacja).
    """

    def __init__(self, notification_tray: NotificationTray | None = None):
        self.tray = notification_tray or tray

    def show_system_notification(self, user_id: str, notification: SystemNotification):
        show_system_notification_task.delay(user_id, notification.model_dump(mode="json"))

    def dismiss(self, user_id: str, tag: str) -> bool:
        return self.tray.dismiss(user_id, tag)

    def visible(self, user_id: str) -> List[Dict[str, Any]]:
        return self.tray.visible(user_id)


@celery_app.task(name="app.services.notification_service.show_system_notification_task")
def show_system_notification_task(user_id: str, notification: Dict[str, Any]):
    """
    Celery task - pokazuje (albo podmienia po tagu) powiadomienie w tray uzytkownika.
    """
    tag = tray.show(user_id, notification)
    logger.info(f"[NOTIFICATION] User {user_id}: {notification.get('title')} (tag {tag})")

    return {"user_id": user_id, "tag": tag, "status": "shown"}
