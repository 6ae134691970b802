# app/data/models/checkout_attempt.py
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String

from app.data.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class CheckoutAttemptModel(Base):
    __tablename__ = "checkout_attempts"

    id = Column(Integer, primary_key=True)
    listing_id = Column(String, nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String, nullable=False)

    # klucz rekoncyliacji, przychodzi z powrotem w url z bramki
    order_id = Column(String, nullable=True, index=True)
    payment_id = Column(String, nullable=True, unique=True, index=True)
    session_id = Column(String, nullable=True)
    checkout_url = Column(String, nullable=True)
    return_url = Column(String, nullable=False, default="/")

    state = Column(String, nullable=False)  # CheckoutState
    session_status = Column(String, nullable=True)  # PaymentSessionStatus
    error = Column(String, nullable=True)
    # sukces zapisany lokalnie, PATCH zamowienia -> paid jeszcze nie potwierdzony
    order_sync_pending = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
