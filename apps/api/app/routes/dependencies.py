"""Dependency wiring for routes."""

from __future__ import annotations

import logging
from secrets import compare_digest
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from app.adapters.auth import (
    AuthVerificationError,
    FirebaseTokenVerifier,
    MockTokenVerifier,
    TokenVerifier,
)
from app.core.config import Settings, get_settings
from app.core.logging_safety import safe_log_identifier
from app.errors import ApiError, forbidden
from app.repositories.memory import InMemoryStore
from app.schemas.auth import AuthPrincipal
from app.services.internal_callbacks import InternalCallbackService
from app.services.jobs import JobRegistry
from app.services.locks import ReviewLockManager
from app.services.notifications import Notifier

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
callback_secret_scheme = APIKeyHeader(
    name="X-Callback-Secret",
    auto_error=False,
    scheme_name="internalCallbackSecret",
)
logger = logging.getLogger(__name__)


def _unauthorized(request: Request, *, event: str, reason: str, message: str) -> ApiError:
    logger.warning(
        "%s correlation_id=%s method=%s path=%s reason=%s",
        event,
        safe_log_identifier(correlation_id_for(request), prefix="cid"),
        request.method,
        request.url.path,
        reason,
    )
    return ApiError(status_code=401, code="UNAUTHORIZED", message=message)


def correlation_id_for(request: Request) -> str:
    """Caller-supplied ``X-Correlation-Id`` or a generated one, memoized on the request."""
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id") or f"req-{uuid4()}"
    request.state.correlation_id = correlation_id
    return correlation_id


def get_token_verifier(settings: Annotated[Settings, Depends(get_settings)]) -> TokenVerifier:
    """Resolve provider adapter from configuration."""
    if settings.auth_provider == "mock":
        return MockTokenVerifier()
    return FirebaseTokenVerifier(project_id=settings.firebase_project_id, audience=settings.firebase_audience)


async def get_authenticated_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> AuthPrincipal:
    """Validate bearer token and attach normalized principal to request context."""
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise _unauthorized(
            request,
            event="auth.rejected",
            reason="invalid_or_missing_bearer",
            message="Invalid or missing bearer token",
        )

    try:
        principal = verifier.verify_token(credentials.credentials)
    except AuthVerificationError as exc:
        raise _unauthorized(
            request,
            event="auth.rejected",
            reason="token_verification_failed",
            message=str(exc) or "Invalid bearer token",
        ) from exc

    logger.debug(
        "auth.accepted correlation_id=%s path=%s principal_id=%s role=%s",
        safe_log_identifier(correlation_id_for(request), prefix="cid"),
        request.url.path,
        safe_log_identifier(principal.user_id, prefix="pid"),
        principal.role,
    )
    request.state.auth_principal = principal
    return principal


async def require_editor(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
) -> AuthPrincipal:
    """Review endpoints are reserved for editors and admins."""
    if not principal.is_editor:
        raise forbidden()
    return principal


async def require_callback_secret(
    request: Request,
    callback_secret: Annotated[str | None, Security(callback_secret_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Validate callback secret for internal endpoints."""
    if callback_secret is None or not compare_digest(callback_secret, settings.callback_secret):
        raise _unauthorized(
            request,
            event="callback.auth_rejected",
            reason="invalid_callback_secret",
            message="Invalid callback authentication",
        )


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_notifier(store: Annotated[InMemoryStore, Depends(get_store)]) -> Notifier:
    return Notifier(store)


def get_job_registry(
    store: Annotated[InMemoryStore, Depends(get_store)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> JobRegistry:
    return JobRegistry(store, notifier)


def get_lock_manager(
    store: Annotated[InMemoryStore, Depends(get_store)],
    jobs: Annotated[JobRegistry, Depends(get_job_registry)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> ReviewLockManager:
    return ReviewLockManager(store, jobs, notifier)


def get_internal_callback_service(
    jobs: Annotated[JobRegistry, Depends(get_job_registry)],
) -> InternalCallbackService:
    return InternalCallbackService(jobs)
