# Fixed-window rate limiting for the console's login, register and write endpoints.
# Counters live in Redis under rl:console:{scope}:{ip}; without Redis every request passes.
import os
import logging
from typing import Callable, Literal, Optional

from fastapi import Request, HTTPException, status

from .redis_client import get_redis

logger = logging.getLogger("aptconsole.rate_limit")

Scope = Literal["login", "register", "write"]

_DEFAULT_LIMITS = {"login": 10, "register": 5, "write": 30}


def _to_int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


def _window_seconds() -> int:
    return _to_int(os.getenv("RATE_LIMIT_WINDOW_SECONDS"), 60)


# RATE_LIMIT_LOGIN_PER_WINDOW / RATE_LIMIT_REGISTER_PER_WINDOW / RATE_LIMIT_WRITE_PER_WINDOW
def _limit_for_scope(scope: Scope) -> int:
    return _to_int(os.getenv(f"RATE_LIMIT_{scope.upper()}_PER_WINDOW"), _DEFAULT_LIMITS[scope])


def _client_ip(request: Request) -> str:
    # Remote address only; X-Forwarded-For is not trusted here
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit(scope: Scope) -> Callable[[Request], None]:
    """
    FastAPI dependency enforcing a per-IP cap per window for one scope.

    The first hit in a window sets the key's TTL; later hits share it. Requests
    over the cap get 429 with a retry_after hint. Redis errors let the request through.
    """
    window = _window_seconds()
    limit = _limit_for_scope(scope)

    def _dependency(request: Request) -> None:
        r = get_redis()
        if r is None:
            return

        ip = _client_ip(request)
        key = f"rl:console:{scope}:{ip}"
        try:
            current = r.incr(key, amount=1)
            if current == 1:
                r.expire(key, window)
            if current <= limit:
                return
            ttl = r.ttl(key)
        except Exception as exc:
            logger.warning("rate_limit.fail_open scope=%s ip=%s: %s", scope, ip, exc)
            return

        retry_after = ttl if isinstance(ttl, int) and ttl > 0 else window
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": "rate_limited", "scope": scope, "limit": limit, "retry_after": retry_after},
        )

    return _dependency
