# Error taxonomy shared by the resource client, cache, mutation pipeline and session shim.
# Route handlers translate these into HTTP responses (see main.py).
from __future__ import annotations

from typing import Any, Dict, Optional


class ConsoleError(Exception):
    """Base class for console failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class FormValidationError(ConsoleError):
    """Local, field-level validation failure. Never reaches the network."""

    def __init__(self, errors: Dict[str, str]) -> None:
        super().__init__("Please correct the highlighted fields")
        self.errors = errors


class TransportFailure(ConsoleError):
    """Network-level failure (connection refused, timeout, ...)."""


class ApiError(ConsoleError):
    """Upstream answered with a 4xx/5xx status."""

    def __init__(self, status_code: int, message: Optional[str], payload: Any = None) -> None:
        super().__init__(message or f"Upstream error {status_code}")
        self.status_code = status_code
        # Message as reported by the server, None when the body carried none
        self.server_message = message
        self.payload = payload


class SessionExpired(ConsoleError):
    """Upstream rejected the credentials (401). Stored credentials have been cleared."""

    redirect = "/login"


class UserNotFound(ConsoleError):
    """Login email did not match any user."""
