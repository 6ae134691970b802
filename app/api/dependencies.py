# app/api/dependencies.py
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.services.backend_client import BackendClient
from app.services.checkout_service import CheckoutCoordinator
from app.services.delivery_gate import GateRegistry
from app.services.gateway_client import GatewayClient
from app.services.lock_service import LockService
from app.services.workflow import WorkflowOrchestrator

_lock_service: LockService | None = None


def bearer_token(authorization: str | None) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


def get_backend(authorization: str | None = Header(default=None)) -> BackendClient:
    # token uzytkownika przekazujemy dalej do backendu
    return BackendClient(token=bearer_token(authorization))


def get_gateway() -> GatewayClient:
    return GatewayClient()


def get_lock_service() -> LockService:
    global _lock_service
    if _lock_service is None:
        _lock_service = LockService()
    return _lock_service


def get_gates(request: Request) -> GateRegistry:
    return request.app.state.gates


def get_orchestrator(
    db: Session = Depends(get_db),
    backend: BackendClient = Depends(get_backend),
    gateway: GatewayClient = Depends(get_gateway),
    lock_service: LockService = Depends(get_lock_service),
    gates: GateRegistry = Depends(get_gates),
) -> WorkflowOrchestrator:
    coordinator = CheckoutCoordinator(
        db=db,
        backend=backend,
        gateway=gateway,
        lock_service=lock_service,
    )
    return WorkflowOrchestrator(backend=backend, coordinator=coordinator, gates=gates)


def get_delivery(gates: GateRegistry = Depends(get_gates)) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(backend=None, gates=gates)
