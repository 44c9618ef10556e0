# Resolution of photoUrl/images fields to something a browser can load.
from __future__ import annotations

import re
from typing import Any, Dict, Optional

_ABSOLUTE = re.compile(r"^https?://", re.IGNORECASE)
_API_SUFFIX = re.compile(r"/?api/?$", re.IGNORECASE)


def backend_host(api_base_url: str) -> str:
    """API base URL with a trailing /api removed: http://host:8080/api -> http://host:8080"""
    return _API_SUFFIX.sub("", api_base_url or "")


def resolve_image_url(raw: Optional[str], api_base_url: str, placeholder: str) -> str:
    value = (raw or "").strip()
    if not value:
        return placeholder
    if _ABSOLUTE.match(value):
        return value
    host = backend_host(api_base_url)
    if value.startswith("/"):
        return f"{host}{value}"
    return f"{host}/{value}"


def image_fields(item: Dict[str, Any], api_base_url: str, placeholder: str) -> Dict[str, str]:
    """imageUrl to render plus the fallback used when the image fails to load."""
    raw = item.get("photoUrl") or item.get("images")
    if isinstance(raw, list):
        raw = raw[0] if raw else None
    return {
        "imageUrl": resolve_image_url(raw, api_base_url, placeholder),
        "imageFallbackUrl": placeholder,
    }
