# Application entrypoint: builds the console container, maps console errors to HTTP, mounts routers.
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings
from .console import LOGIN_REDIRECT, build_console
from .db import Base, DATABASE_URL, engine
from .errors import ApiError, FormValidationError, SessionExpired, TransportFailure, UserNotFound
from .storage import DurableStorage
from .routes.auth import router as auth_router
from .routes.dashboard import router as dashboard_router
from .routes.screens import router as screens_router


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SessionExpired)
    async def _session_expired(request: Request, exc: SessionExpired) -> JSONResponse:
        # Credentials are already cleared by the session shim; send the client to login
        return JSONResponse(status_code=401, content={"detail": exc.message, "redirect": LOGIN_REDIRECT})

    @app.exception_handler(UserNotFound)
    async def _user_not_found(request: Request, exc: UserNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.message})

    @app.exception_handler(FormValidationError)
    async def _invalid_form(request: Request, exc: FormValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.message, "errors": exc.errors})

    @app.exception_handler(ApiError)
    async def _upstream_error(request: Request, exc: ApiError) -> JSONResponse:
        # Upstream client errors pass through; upstream server errors are a bad gateway for us
        code = exc.status_code if 400 <= exc.status_code < 500 else 502
        return JSONResponse(status_code=code, content={"detail": exc.message})

    @app.exception_handler(TransportFailure)
    async def _transport_failure(request: Request, exc: TransportFailure) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": exc.message})


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    storage: Optional[DurableStorage] = None,
) -> FastAPI:
    """
    Build the console API.

    transport replaces the network for the upstream client (tests pass an
    httpx.MockTransport); storage replaces the default SQLAlchemy-backed storage.
    """
    settings = settings or Settings.from_env()
    app = FastAPI(title="Apartment Console API", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)

    @app.on_event("startup")
    def on_startup() -> None:
        # For local SQLite, auto-create the storage table; other databases rely on Alembic migrations.
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        app.state.console = build_console(settings, storage=storage, transport=transport)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        console = getattr(app.state, "console", None)
        if console is not None:
            await console.aclose()

    # Simple liveness endpoint for container orchestrators and uptime checks
    @app.get("/healthz")
    def healthz() -> dict:
        return {"status": "ok"}

    app.include_router(auth_router, prefix="", tags=["auth"])
    app.include_router(dashboard_router, prefix="/api/v1", tags=["dashboard"])
    app.include_router(screens_router, prefix="/api/v1", tags=["screens"])
    return app


app = create_app()
