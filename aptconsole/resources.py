# Thin async HTTP layer over the upstream apartment REST API.
# Knows the base URL and path for each collection, attaches the bearer token, and maps
# failures onto the console error taxonomy. No retries: every failure is terminal for the call.
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from .errors import ApiError, SessionExpired, TransportFailure
from .storage import TOKEN_KEY, DurableStorage

logger = logging.getLogger("aptconsole.resources")

# Collection paths relative to API_BASE_URL
RESOURCES: Dict[str, str] = {
    "users": "/users",
    "apartments": "/apartments",
    "inventories": "/inventories",
    "bookings": "/bookings",
    "feedbacks": "/feedbacks",
    "payments": "/payments",
    "installment-plans": "/installment-plans",
}

DASHBOARD_PATH = "/dashboard"


def collection_path(resource: str) -> str:
    try:
        return RESOURCES[resource]
    except KeyError:
        raise ValueError(f"Unknown resource: {resource}") from None


def item_path(resource: str, item_id: int) -> str:
    return f"{collection_path(resource)}/{int(item_id)}"


# Declared by the backend; no screen reads them today
def user_bookings_path() -> str:
    return "/bookings/user"


def apartment_feedbacks_path(apartment_id: int) -> str:
    return f"/feedbacks/apartment/{int(apartment_id)}"


def user_payments_path() -> str:
    return "/payments/user"


def user_installment_plans_path() -> str:
    return "/installment-plans/user"


def _server_message(response: httpx.Response) -> Optional[str]:
    """Pull a human-readable message out of an error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or None
    if isinstance(body, dict):
        for field in ("message", "error", "detail"):
            value = body.get(field)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


class ResourceClient:
    """
    Async client for the upstream REST collections.

    on_unauthorized is called once per 401 response, before SessionExpired is
    raised; the session shim uses it to drop stored credentials.
    """

    def __init__(
        self,
        base_url: str,
        storage: DurableStorage,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_unauthorized: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._storage = storage
        self.on_unauthorized = on_unauthorized
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def _auth_headers(self) -> Dict[str, str]:
        token = self._storage.get_item(TOKEN_KEY)
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def request(self, method: str, path: str, json: Any = None) -> Any:
        try:
            response = await self._http.request(method, path, json=json, headers=self._auth_headers())
        except httpx.TimeoutException as exc:
            logger.warning("resources.timeout method=%s path=%s", method, path)
            raise TransportFailure("The server took too long to respond") from exc
        except httpx.HTTPError as exc:
            logger.warning("resources.transport_error method=%s path=%s: %s", method, path, exc)
            raise TransportFailure("Could not reach the server") from exc

        if response.status_code == 401:
            logger.info("resources.unauthorized method=%s path=%s", method, path)
            if self.on_unauthorized is not None:
                self.on_unauthorized()
            raise SessionExpired("Your session has expired. Please log in again.")

        if response.status_code >= 400:
            message = _server_message(response)
            logger.info(
                "resources.error method=%s path=%s status=%s message=%s",
                method, path, response.status_code, message,
            )
            raise ApiError(response.status_code, message, payload=response.text)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # Collection helpers
    async def list(self, resource: str) -> List[Dict[str, Any]]:
        data = await self.request("GET", collection_path(resource))
        # Non-list bodies are treated as an empty collection
        return data if isinstance(data, list) else []

    async def get(self, resource: str, item_id: int) -> Dict[str, Any]:
        return await self.request("GET", item_path(resource, item_id))

    async def create(self, resource: str, payload: Dict[str, Any]) -> Any:
        return await self.request("POST", collection_path(resource), json=payload)

    async def update(self, resource: str, item_id: int, payload: Dict[str, Any]) -> Any:
        return await self.request("PUT", item_path(resource, item_id), json=payload)

    async def delete(self, resource: str, item_id: int) -> None:
        await self.request("DELETE", item_path(resource, item_id))

    async def fetch(self, path: str) -> Any:
        return await self.request("GET", path)

    async def dashboard(self) -> Dict[str, Any]:
        data = await self.request("GET", DASHBOARD_PATH)
        return data if isinstance(data, dict) else {}
