"""FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.config import Settings, get_settings
from app.core.logging_safety import configure_logging
from app.errors import ApiError
from app.repositories.memory import InMemoryStore
from app.repositories.persistence import JsonFileSnapshotBackend, MemorySnapshotBackend, SnapshotBackend
from app.routes import internal_router, jobs_router, notifications_router, review_router
from app.schemas.error import ErrorResponse

logger = logging.getLogger(__name__)

_CALLBACK_VALIDATION_PATHS: set[tuple[str, str]] = {
    ("POST", "/api/v1/internal/jobs/{jobId}/transcription"),
}


def build_store(settings: Settings) -> InMemoryStore:
    """Construct the state container from configuration and load persisted state."""
    backend: SnapshotBackend
    if settings.state_path is not None:
        backend = JsonFileSnapshotBackend(settings.state_path)
    else:
        backend = MemorySnapshotBackend()

    store = InMemoryStore(backend=backend, lock_ttl=timedelta(seconds=settings.lock_ttl_seconds))
    store.load()
    return store


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(settings.log_level)
    if not app.state.store_injected:
        app.state.store = build_store(settings)
    logger.info(
        "app.started state_path=%s lock_ttl_seconds=%s",
        settings.state_path,
        int(app.state.store.lock_ttl.total_seconds()),
    )
    try:
        yield
    finally:
        logger.info("app.stopped jobs=%s locks=%s", len(app.state.store.jobs), len(app.state.store.locks))


def create_app(store: InMemoryStore | None = None) -> FastAPI:
    app = FastAPI(title="Transcript Review API", version="1.0.0", lifespan=_lifespan)
    # Startup replaces the default store with the configured one unless a store was injected.
    app.state.store = store if store is not None else InMemoryStore()
    app.state.store_injected = store is not None

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        route = request.scope.get("route")
        route_path = getattr(route, "path", request.url.path)
        route_key = (request.method.upper(), route_path)
        if route_key in _CALLBACK_VALIDATION_PATHS:
            payload = ErrorResponse(code="VALIDATION_ERROR", message="Invalid callback payload")
            return JSONResponse(status_code=409, content=payload.model_dump(exclude_none=True))

        return await request_validation_exception_handler(request, exc)

    api_prefix = "/api/v1"
    app.include_router(jobs_router, prefix=api_prefix)
    app.include_router(review_router, prefix=api_prefix)
    app.include_router(notifications_router, prefix=api_prefix)
    app.include_router(internal_router, prefix=api_prefix)

    return app


app = create_app()
