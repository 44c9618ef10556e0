# Optional shared Redis connection, used by the rate limiter.
# Off unless REDIS_ENABLED is truthy; any connection problem degrades to "no Redis".
import logging
import os
from typing import Optional

_logger = logging.getLogger("aptconsole.redis")


def _truthy(val: Optional[str]) -> bool:
    if val is None:
        return False
    return val.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def is_redis_enabled() -> bool:
    return _truthy(os.getenv("REDIS_ENABLED", "false"))


# Connected client, and whether a connection was already attempted in this process
_client = None
_initialized = False


def get_redis():
    """
    Return a Redis client when enabled and reachable, otherwise None.

    The first call connects and pings; a failed attempt is remembered so later
    calls return None without retrying.
    """
    global _client, _initialized
    if not is_redis_enabled():
        return None
    if _client is not None:
        return _client
    if _initialized:
        return None

    url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    _initialized = True
    try:
        import redis

        client = redis.Redis.from_url(
            url,
            socket_timeout=0.25,
            socket_connect_timeout=0.25,
            retry_on_timeout=False,
        )
        client.ping()
    except Exception as exc:
        _logger.warning("redis.unavailable url=%s: %s", url, exc)
        return None
    _client = client
    _logger.info("redis.connected url=%s", url)
    return _client
