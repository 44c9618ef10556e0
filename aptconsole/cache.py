# Per-key cache of last-known server state, shared by every screen of the console.
# Reads are single-flight per key; mutations invalidate keys and never write into the cache.
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

logger = logging.getLogger("aptconsole.cache")

# "apartments" for a collection, ("apartments", 7) for a single item
CacheKey = Union[str, Tuple[Any, ...]]
Loader = Callable[[CacheKey], Awaitable[Any]]


def normalize_key(key: Union[CacheKey, List[Any]]) -> CacheKey:
    if isinstance(key, list):
        return tuple(key)
    return key


def key_resource(key: CacheKey) -> str:
    return key[0] if isinstance(key, tuple) else key


@dataclass
class CacheState:
    """Snapshot of one key, for rendering loading/error banners next to data."""
    data: Any = None
    has_data: bool = False
    error: Optional[BaseException] = None
    is_fetching: bool = False
    updated_at: Optional[float] = None


class _Entry:
    __slots__ = ("data", "has_data", "error", "updated_at", "inflight")

    def __init__(self) -> None:
        self.data: Any = None
        self.has_data = False
        self.error: Optional[BaseException] = None
        self.updated_at: Optional[float] = None
        self.inflight: Optional[asyncio.Task] = None


def _consume_result(task: asyncio.Task) -> None:
    # Mark background failures as retrieved; the error is kept on the entry instead
    if not task.cancelled():
        task.exception()


class EntityCache:
    """
    Cache of upstream reads keyed by resource name or (resource, id).

    Semantics:
    - get(key) fetches when nothing is cached, otherwise returns the cached value at once.
      When stale_after is set and the value is older than that, a background refresh
      is started and the cached value is still returned.
    - Concurrent get() calls for a key share one in-flight fetch.
    - invalidate(key) drops the value and detaches any in-flight fetch, so the next get()
      always issues a new request and the detached result is never stored.
    - A failed fetch keeps the previous value (if any) and records the error on the key.
    """

    def __init__(
        self,
        loader: Loader,
        *,
        stale_after: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._stale_after = stale_after
        self._clock = clock
        self._entries: Dict[CacheKey, _Entry] = {}
        self._tasks: Set[asyncio.Task] = set()

    def _is_stale(self, entry: _Entry) -> bool:
        if self._stale_after is None or entry.updated_at is None:
            return False
        return self._clock() - entry.updated_at >= self._stale_after

    def _start_fetch(self, key: CacheKey, entry: _Entry) -> asyncio.Task:
        task = asyncio.ensure_future(self._fetch(key, entry))
        entry.inflight = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(_consume_result)
        return task

    async def _fetch(self, key: CacheKey, entry: _Entry) -> Any:
        logger.debug("cache.fetch key=%s", key)
        try:
            data = await self._loader(key)
        except Exception as exc:
            if self._entries.get(key) is entry:
                entry.error = exc
                entry.inflight = None
            logger.warning("cache.fetch.failed key=%s: %s", key, exc)
            raise
        if self._entries.get(key) is entry:
            entry.data = data
            entry.has_data = True
            entry.error = None
            entry.updated_at = self._clock()
            entry.inflight = None
        else:
            logger.debug("cache.fetch.detached key=%s", key)
        return data

    async def get(self, key: Union[CacheKey, List[Any]]) -> Any:
        key = normalize_key(key)
        entry = self._entries.get(key)
        if entry is not None and entry.has_data:
            if entry.inflight is None and self._is_stale(entry):
                logger.debug("cache.refresh.background key=%s", key)
                self._start_fetch(key, entry)
            return entry.data

        if entry is None:
            entry = self._entries[key] = _Entry()
        task = entry.inflight or self._start_fetch(key, entry)
        # shield: a cancelled waiter must not cancel the fetch other waiters share
        return await asyncio.shield(task)

    async def refresh(self, key: Union[CacheKey, List[Any]]) -> Any:
        """Force a fetch now (joining one already in flight)."""
        key = normalize_key(key)
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        task = entry.inflight or self._start_fetch(key, entry)
        return await asyncio.shield(task)

    def peek(self, key: Union[CacheKey, List[Any]]) -> CacheState:
        entry = self._entries.get(normalize_key(key))
        if entry is None:
            return CacheState()
        return CacheState(
            data=entry.data,
            has_data=entry.has_data,
            error=entry.error,
            is_fetching=entry.inflight is not None,
            updated_at=entry.updated_at,
        )

    def invalidate(self, key: Union[CacheKey, List[Any]]) -> bool:
        """Drop a key. Idempotent; returns True when something was cached or in flight."""
        key = normalize_key(key)
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        logger.debug("cache.invalidate key=%s", key)
        return True

    def invalidate_resource(self, resource: str) -> List[CacheKey]:
        """Drop the collection key and every single-item key of a resource."""
        dropped = [k for k in self._entries if key_resource(k) == resource]
        for k in dropped:
            self._entries.pop(k, None)
        if dropped:
            logger.debug("cache.invalidate resource=%s keys=%d", resource, len(dropped))
        return dropped

    def invalidate_many(self, resources: Iterable[str]) -> None:
        for resource in resources:
            self.invalidate_resource(resource)

    def keys(self) -> List[CacheKey]:
        return list(self._entries)

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._entries.clear()
