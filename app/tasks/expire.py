# app/tasks/expire.py
from app.celery_worker import celery_app
from app.data.database import SessionLocal
from app.services.backend_client import BackendClient
from app.services.checkout_service import CheckoutCoordinator
from app.services.gateway_client import GatewayClient
from app.services.lock_service import LockService
from app.utils.logging import get_logger

logger = get_logger(__name__)
lock_service = LockService()


@celery_app.task(name="app.tasks.expire.expire_checkout_attempts_task")
def expire_checkout_attempts_task():
    """Sesje checkout bez powrotu z bramki po TTL -> RECONCILED_EXPIRED."""
    logger.info("Expire checkout attempts task started")

    db = SessionLocal()
    try:
        coordinator = CheckoutCoordinator(
            db=db,
            backend=BackendClient(),
            gateway=GatewayClient(),
            lock_service=lock_service,
        )
        expired = coordinator.expire_stale()
    finally:
        db.close()

    return {"expired": expired}
