# Pytest configuration for console API tests.
# Forces a local SQLite storage DB, disables Redis and background refresh, and serves the
# upstream REST API from an in-memory fake through httpx.MockTransport.
import json
import os
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

# Test-time environment: local SQLite storage, Redis disabled, no stale refresh
os.environ.setdefault("CONSOLE_DATABASE_URL", "sqlite:///./test_console.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("API_BASE_URL", "http://backend.test/api")
os.environ.setdefault("CACHE_STALE_SECONDS", "none")

import sys
# Ensure the repo root is on sys.path so 'aptconsole' resolves when running pytest from the repo root
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from aptconsole.db import Base, engine  # noqa: E402
from aptconsole.main import create_app  # noqa: E402
from aptconsole.resources import RESOURCES  # noqa: E402

API_BASE_URL = os.environ["API_BASE_URL"]

# Embedded snapshot sources: {"apartment": {"id": 3}} is stored as the full apartment row
_EMBEDS = {"user": "users", "apartment": "apartments", "booking": "bookings", "payment": "payments"}


class FakeBackend:
    """
    In-memory stand-in for the apartment REST API.

    - collections keyed by resource name, rows keyed by id
    - calls records (method, path) for every request, paths without the /api prefix
    - fail(method, path, ...) makes the next matching requests answer with an error
      status or raise a transport error
    - unauthorized=True answers 401 to everything
    - bare_writes=True stores created rows but answers 201 with no body
    """

    def __init__(self) -> None:
        self.collections: Dict[str, Dict[int, Dict[str, Any]]] = {name: {} for name in RESOURCES}
        self.calls: List[Tuple[str, str]] = []
        self.headers: List[Dict[str, str]] = []
        self.failures: Dict[Tuple[str, str], Any] = {}
        self.unauthorized = False
        # Store writes but answer them with an empty body
        self.bare_writes = False
        self._next_id = 1

    # Seeding
    def seed(self, resource: str, **fields: Any) -> Dict[str, Any]:
        row = self._expand({**fields, "id": self._next_id})
        self._next_id += 1
        self.collections[resource][row["id"]] = row
        return row

    def fail(self, method: str, path: str, status: int = 500, body: Optional[Dict[str, Any]] = None) -> None:
        self.failures[(method, path)] = (status, body)

    def fail_transport(self, method: str, path: str) -> None:
        self.failures[(method, path)] = "connect"

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call == (method, path))

    def _expand(self, row: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(row)
        for name, resource in _EMBEDS.items():
            ref = out.get(name)
            if isinstance(ref, dict) and "id" in ref:
                out[name] = dict(self.collections[resource].get(ref["id"], ref))
        return out

    def _dashboard(self) -> Dict[str, Any]:
        payments = self.collections["payments"].values()
        return {
            "totalUsers": len(self.collections["users"]),
            "totalApartments": len(self.collections["apartments"]),
            "totalBookings": len(self.collections["bookings"]),
            "totalRevenue": sum(float(p.get("amount") or 0) for p in payments),
        }

    # Transport
    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api"):]
        method = request.method
        self.calls.append((method, path))
        self.headers.append(dict(request.headers))

        if self.unauthorized:
            return httpx.Response(401, json={"message": "Unauthorized"})
        failure = self.failures.get((method, path))
        if failure == "connect":
            raise httpx.ConnectError("connection refused", request=request)
        if failure is not None:
            status, body = failure
            return httpx.Response(status, json=body) if body is not None else httpx.Response(status)

        if path == "/dashboard":
            return httpx.Response(200, json=self._dashboard())

        parts = [p for p in path.split("/") if p]
        resource = next((name for name, p in RESOURCES.items() if p == f"/{parts[0]}"), None) if parts else None
        if resource is None:
            return httpx.Response(404, json={"message": "Not found"})
        rows = self.collections[resource]

        if len(parts) == 1:
            if method == "GET":
                return httpx.Response(200, json=list(rows.values()))
            if method == "POST":
                created = self.seed(resource, **json.loads(request.content or b"{}"))
                if self.bare_writes:
                    return httpx.Response(201)
                return httpx.Response(201, json=created)
            return httpx.Response(405)

        item_id = int(parts[1])
        if item_id not in rows:
            return httpx.Response(404, json={"message": f"{resource} {item_id} not found"})
        if method == "GET":
            return httpx.Response(200, json=rows[item_id])
        if method == "PUT":
            body = json.loads(request.content or b"{}")
            body.pop("password", None)
            rows[item_id] = self._expand({**rows[item_id], **body, "id": item_id})
            return httpx.Response(200, json=rows[item_id])
        if method == "DELETE":
            del rows[item_id]
            return httpx.Response(204)
        return httpx.Response(405)


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_db() -> Iterator[None]:
    """Create the storage schema once per session and drop it at the end."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_db() -> Iterator[None]:
    """
    Function-level isolation: a stored session subject or token never leaks between tests.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def transport(backend: FakeBackend) -> httpx.MockTransport:
    return httpx.MockTransport(backend.handle)


@pytest.fixture()
def client(transport: httpx.MockTransport) -> Iterator[TestClient]:
    """
    FastAPI TestClient bound to a fresh console whose upstream is the fake backend.
    """
    with TestClient(create_app(transport=transport)) as c:
        yield c


@pytest.fixture()
def login(client: TestClient, backend: FakeBackend) -> Callable[..., Dict[str, Any]]:
    """Seed a user with the given role and log in as them; returns the user row."""
    def _login(role: str = "ADMIN", username: Optional[str] = None) -> Dict[str, Any]:
        name = username or role.lower()
        user = backend.seed("users", username=name, email=f"{name}@acme.org", role=role)
        r = client.post("/auth/login", json={"email": user["email"]})
        assert r.status_code == 200, r.text
        client.get("/api/v1/notifications")
        return user

    return _login
