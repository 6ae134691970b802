"""Shared test fixtures."""

import os

# przed importem app.*, settings czytaja env przy imporcie
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("PUBLIC_BASE_URL", "http://shop.test")
os.environ.setdefault("VERIFY_PAYMENT_ON_RETURN", "0")

from decimal import Decimal
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.data.database import Base
from app.data.models import CheckoutAttemptModel  # noqa: F401
from app.domain.schemas import Listing, Order, Payment

PAYMENT_ID = "3f2b8c1e-9d4a-4e6b-8a7c-1b2d3e4f5a6b"
COMPANY_ID = "7c9e6679-7425-40de-944b-e07fc1f90ae7"


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def listing() -> Listing:
    return Listing(
        id="lst-1",
        title="Portland cement",
        starting_price=Decimal("10.50"),
        stock_amount=5,
        unit_of_measure="bag",
        is_biddable=True,
        status="active",
        seller_company_id=COMPANY_ID,
    )


@pytest.fixture
def backend(listing) -> Mock:
    mock = Mock()
    mock.get_listing.return_value = listing
    mock.get_listing_bids.return_value = []
    mock.create_order.return_value = Order(id="ord-1")
    mock.create_payment.return_value = Payment(id=PAYMENT_ID, order_id="ord-1", amount="31.50", method="card")
    mock.update_order_status.return_value = Order(id="ord-1", order_status="paid")
    return mock


@pytest.fixture
def gateway() -> Mock:
    mock = Mock()
    mock.create_session.return_value = "sess-1"
    mock.checkout_url.return_value = "https://gateway.test/pay/sess-1?key=pk_test"
    return mock


@pytest.fixture
def lock_service() -> Mock:
    mock = Mock()
    mock.acquire_payment_lock.return_value = "token-1"
    mock.release_payment_lock.return_value = True
    return mock
