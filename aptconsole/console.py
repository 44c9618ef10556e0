# Process-wide console state, built once at startup and handed to routes through FastAPI
# dependencies. Nothing outside this container holds the cache, session or forms.
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from fastapi import Depends, HTTPException, Request, status

from .cache import CacheKey, EntityCache
from .config import Settings
from .mutations import MutationPipeline
from .notifications import Notifier
from .resources import ResourceClient
from .screens import SCREENS, RowContext, Screen
from .session import SessionShim
from .storage import TOKEN_KEY, DurableStorage

logger = logging.getLogger("aptconsole.console")

LOGIN_REDIRECT = "/login"


@dataclass
class Console:
    settings: Settings
    storage: DurableStorage
    notifier: Notifier
    client: ResourceClient
    cache: EntityCache
    pipeline: MutationPipeline
    session: SessionShim

    @property
    def row_context(self) -> RowContext:
        return RowContext(self.settings.api_base_url, self.settings.placeholder_image_url)

    async def aclose(self) -> None:
        await self.cache.aclose()
        await self.client.aclose()


def build_console(
    settings: Settings,
    storage: Optional[DurableStorage] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Console:
    storage = storage or DurableStorage()
    if settings.api_token and not storage.get_item(TOKEN_KEY):
        storage.set_item(TOKEN_KEY, settings.api_token)

    notifier = Notifier()
    session = SessionShim(storage, notifier)
    client = ResourceClient(
        settings.api_base_url,
        storage,
        timeout=settings.request_timeout_seconds,
        transport=transport,
        on_unauthorized=session.expire,
    )

    async def load(key: CacheKey) -> Any:
        if isinstance(key, tuple):
            resource, item_id = key
            return await client.get(resource, item_id)
        if key == "dashboard":
            return await client.dashboard()
        return await client.list(key)

    cache = EntityCache(load, stale_after=settings.cache_stale_seconds)
    pipeline = MutationPipeline(client, cache, notifier, timezone_name=settings.timezone)
    session.bind(client, pipeline)
    logger.info("console.ready api=%s authenticated=%s", settings.api_base_url, session.is_authenticated)
    return Console(settings, storage, notifier, client, cache, pipeline, session)


# ----------------
# Dependencies
# ----------------
def get_console(request: Request) -> Console:
    return request.app.state.console


def login_required() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": "login_required", "redirect": LOGIN_REDIRECT},
    )


def require_session(console: Console = Depends(get_console)) -> Console:
    if not console.session.is_authenticated:
        raise login_required()
    return console


def get_screen(name: str, console: Console = Depends(require_session)) -> Screen:
    screen = SCREENS.get(name)
    if screen is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Screen not found")
    if not screen.allows(console.session.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"{screen.title} is not available for your role")
    return screen
