# app/services/gateway_client.py
import requests
from requests import RequestException

from app.domain.errors import GatewayError
from app.domain.schemas import GatewaySessionDetails, GatewaySessionRequest
from app.services.backend_client import error_message
from app.utils.logging import get_logger
from app.utils.retry import http_retry
from app.utils.settings import (
    GATEWAY_BASE_URL,
    GATEWAY_PUBLISHABLE_KEY,
    GATEWAY_SECRET_KEY,
    HTTP_TIMEOUT_SECONDS,
)

logger = get_logger(__name__)


class GatewayClient:
    """Klient bramki platnosci (hosted checkout)."""

    def __init__(
        self,
        base_url: str | None = None,
        secret_key: str | None = None,
        publishable_key: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or GATEWAY_BASE_URL).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else GATEWAY_SECRET_KEY
        self.publishable_key = publishable_key if publishable_key is not None else GATEWAY_PUBLISHABLE_KEY
        self.timeout = timeout or HTTP_TIMEOUT_SECONDS
        self.http = session or requests.Session()

    def _headers(self) -> dict:
        return {
            "thawani-api-key": self.secret_key,
            "Content-Type": "application/json",
        }

    def create_session(self, request: GatewaySessionRequest) -> str:
        """Tworzy sesje checkout i zwraca session_id."""
        url = f"{self.base_url}/api/v1/checkout/session"
        logger.info(f"GatewayClient POST {url} ref={request.client_reference_id}")

        try:
            resp = self.http.post(
                url,
                json=request.model_dump(exclude_none=True),
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            body = resp.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise GatewayError(error_message(e.response, "Failed to create payment session"), status) from e
        except (RequestException, ValueError) as e:
            raise GatewayError(f"Failed to create payment session: {e}") from e

        session_id = (body.get("data") or {}).get("session_id") if isinstance(body, dict) else None
        if not session_id:
            raise GatewayError("Payment gateway returned no session id")
        return session_id

    @http_retry()
    def _fetch_session(self, session_id: str) -> dict:
        url = f"{self.base_url}/api/v1/checkout/session/{session_id}"
        logger.info(f"GatewayClient GET {url}")

        resp = self.http.get(url, headers=self._headers(), timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def retrieve_session(self, session_id: str) -> GatewaySessionDetails:
        try:
            body = self._fetch_session(session_id)
            return GatewaySessionDetails.model_validate(body.get("data") or {})
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise GatewayError(error_message(e.response, "Failed to retrieve payment session"), status) from e
        except (RequestException, ValueError) as e:
            raise GatewayError(f"Failed to retrieve payment session: {e}") from e

    def checkout_url(self, session_id: str) -> str:
        return f"{self.base_url}/pay/{session_id}?key={self.publishable_key}"
