# app/main.py
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from app.api.request_log import RequestLogMiddleware
from app.api.routers import bids, checkout, delivery, health, notifications, payments
from app.data.database import Base, engine
from app.data.models import CheckoutAttemptModel  # noqa: F401 rejestracja tabeli w Base.metadata
from app.services.delivery_gate import GateRegistry
from app.utils.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Creating tables: {list(Base.metadata.tables.keys())}")
    Base.metadata.create_all(bind=engine)

    app.state.gates = GateRegistry()
    yield

    # zatrzymanie taskow dostarczania powiadomien
    await app.state.gates.shutdown()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Marketplace Workflow Service",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLogMiddleware)

    app.include_router(health.router)
    app.include_router(bids.router)
    app.include_router(checkout.router)
    app.include_router(payments.router)
    app.include_router(notifications.router)
    app.include_router(delivery.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
