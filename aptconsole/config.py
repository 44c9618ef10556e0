# Runtime configuration read from environment variables.
# Loaded once at startup and handed to the Console container.
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional


DEFAULT_API_BASE_URL = "http://localhost:8080/api"
DEFAULT_PLACEHOLDER_IMAGE = "https://via.placeholder.com/800x400?text=No+Image"


def _to_float(val: Optional[str], default: Optional[float]) -> Optional[float]:
    if val is None:
        return default
    val = val.strip().lower()
    if val in {"", "none", "off"}:
        return None
    try:
        return float(val)
    except ValueError:
        return default


# Parse CORS origins from a comma-separated env var.
# Note: '*' cannot be used with allow_credentials=True; we fall back to explicit localhost origins for dev.
def _parse_cors_origins(env_value: Optional[str]) -> List[str]:
    default_dev_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    if not env_value:
        return default_dev_origins
    origins = [o.strip() for o in env_value.split(",") if o.strip()]
    if "*" in origins:
        return default_dev_origins
    return origins


@dataclass(frozen=True)
class Settings:
    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: Optional[str] = None
    request_timeout_seconds: float = 15.0
    # None disables background refresh; cached entries are then served until invalidated
    cache_stale_seconds: Optional[float] = 30.0
    timezone: str = "UTC"
    placeholder_image_url: str = DEFAULT_PLACEHOLDER_IMAGE
    cors_origins: List[str] = field(default_factory=lambda: _parse_cors_origins(None))

    @classmethod
    def from_env(cls) -> "Settings":
        token = (os.getenv("API_TOKEN") or "").strip() or None
        return cls(
            api_base_url=os.getenv("API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
            api_token=token,
            request_timeout_seconds=_to_float(os.getenv("REQUEST_TIMEOUT_SECONDS"), 15.0) or 15.0,
            cache_stale_seconds=_to_float(os.getenv("CACHE_STALE_SECONDS"), 30.0),
            timezone=os.getenv("CONSOLE_TIMEZONE", "UTC"),
            placeholder_image_url=os.getenv("PLACEHOLDER_IMAGE_URL", DEFAULT_PLACEHOLDER_IMAGE),
            cors_origins=_parse_cors_origins(os.getenv("CORS_ORIGINS")),
        )
