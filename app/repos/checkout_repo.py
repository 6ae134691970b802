# app/repos/checkout_repo.py
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.data.models.checkout_attempt import CheckoutAttemptModel


class CheckoutRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_attempt(self, attempt: CheckoutAttemptModel) -> CheckoutAttemptModel:
        self.db.add(attempt)
        self.db.commit()
        self.db.refresh(attempt)
        return attempt

    def get_attempt(self, attempt_id: int) -> CheckoutAttemptModel | None:
        return self.db.get(CheckoutAttemptModel, attempt_id)

    def get_by_payment_id(self, payment_id: str) -> CheckoutAttemptModel | None:
        return self.db.execute(
            select(CheckoutAttemptModel).where(CheckoutAttemptModel.payment_id == payment_id)
        ).scalar_one_or_none()

    def get_stale_attempts(self, cutoff: datetime, states: List[str]) -> List[CheckoutAttemptModel]:
        return list(
            self.db.execute(
                select(CheckoutAttemptModel).where(
                    CheckoutAttemptModel.state.in_(states),
                    CheckoutAttemptModel.updated_at < cutoff,
                )
            ).scalars().all()
        )

    def update_attempt_version(self, attempt_id: int, old_version: int, new_data: Dict[str, Any]) -> int:
        # UPDATE ... SET version = n+1 WHERE id = :id AND version = :n
        values = dict(new_data)
        values.setdefault("version", old_version + 1)
        values.setdefault("updated_at", datetime.now(timezone.utc))
        result = self.db.execute(
            update(CheckoutAttemptModel)
            .where(
                CheckoutAttemptModel.id == attempt_id,
                CheckoutAttemptModel.version == old_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def refresh(self, attempt: CheckoutAttemptModel) -> CheckoutAttemptModel:
        self.db.refresh(attempt)
        return attempt

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
