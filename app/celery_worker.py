# app/celery_worker.py
from celery import Celery

from app.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "marketplace",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# moduly z taskami, bez tego worker ich nie zarejestruje
celery_app.conf.imports = (
    "app.tasks.expire",
    "app.services.notification_service",
)

# sweep sesji checkout bez powrotu z bramki
celery_app.conf.beat_schedule = {
    "expire-checkout-attempts-every-minute": {
        "task": "app.tasks.expire.expire_checkout_attempts_task",
        "schedule": 60.0,
    },
}

celery_app.conf.timezone = "UTC"
celery_app.conf.task_serializer = "json"
celery_app.conf.result_expires = 60 * 60
