"""Review queue, review lock and verification routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from app.errors import ApiError, not_found
from app.routes.dependencies import get_job_registry, get_lock_manager, require_editor
from app.schemas.auth import AuthPrincipal
from app.schemas.error import ErrorResponse, LockHeldError, LockNotHeldError, NoLeakNotFoundError, ReviewStateError
from app.schemas.job import Job, VerifyJobRequest
from app.schemas.review import ReleaseLockResponse, ReviewLock, ReviewTask
from app.services.jobs import JobRegistry
from app.services.locks import LockDenied, ReviewLockManager

router = APIRouter(tags=["Review"])


def _not_reviewable(current_status) -> ApiError:
    return ApiError(
        status_code=409,
        code="JOB_NOT_REVIEWABLE",
        message="Job is not in a reviewable state",
        details={"current_status": current_status},
    )


def _denied_error(denied: LockDenied) -> ApiError:
    if denied.reason == "not_found":
        return not_found()
    if denied.reason == "not_reviewable":
        return _not_reviewable(denied.current_status)
    return ApiError(
        status_code=409,
        code="LOCK_HELD",
        message="Task is already locked by another editor",
        details={
            "job_id": denied.job_id,
            "editor_name": denied.holder.editor_name,
            "expires_at": denied.holder.expires_at.isoformat(),
        },
    )


@router.get(
    "/review/queue",
    response_model=list[ReviewTask],
    responses={403: {"model": ErrorResponse}},
)
async def get_review_queue(
    principal: Annotated[AuthPrincipal, Depends(require_editor)],
    jobs: Annotated[JobRegistry, Depends(get_job_registry)],
    locks: Annotated[ReviewLockManager, Depends(get_lock_manager)],
) -> list[ReviewTask]:
    return [locks.review_task(record, viewer_id=principal.user_id) for record in jobs.review_queue()]


@router.get(
    "/review/locks",
    response_model=list[ReviewLock],
    responses={403: {"model": ErrorResponse}},
)
async def list_review_locks(
    _: Annotated[AuthPrincipal, Depends(require_editor)],
    locks: Annotated[ReviewLockManager, Depends(get_lock_manager)],
) -> list[ReviewLock]:
    return [ReviewLockManager.to_review_lock(lock) for lock in locks.list_locks()]


@router.get(
    "/jobs/{jobId}/lock",
    response_model=ReviewLock | None,
    responses={403: {"model": ErrorResponse}},
)
async def get_review_lock(
    job_id: Annotated[str, Path(alias="jobId")],
    _: Annotated[AuthPrincipal, Depends(require_editor)],
    locks: Annotated[ReviewLockManager, Depends(get_lock_manager)],
) -> ReviewLock | None:
    lock = locks.get_lock(job_id)
    return ReviewLockManager.to_review_lock(lock) if lock is not None else None


@router.post(
    "/jobs/{jobId}/lock",
    response_model=ReviewLock,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": LockHeldError | ReviewStateError},
    },
)
async def acquire_review_lock(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(require_editor)],
    locks: Annotated[ReviewLockManager, Depends(get_lock_manager)],
) -> ReviewLock:
    outcome = locks.acquire(job_id=job_id, editor_id=principal.user_id, editor_name=principal.editor_name)
    if isinstance(outcome, LockDenied):
        raise _denied_error(outcome)
    return ReviewLockManager.to_review_lock(outcome)


@router.delete(
    "/jobs/{jobId}/lock",
    response_model=ReleaseLockResponse,
    responses={403: {"model": ErrorResponse}},
)
async def release_review_lock(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(require_editor)],
    locks: Annotated[ReviewLockManager, Depends(get_lock_manager)],
) -> ReleaseLockResponse:
    released = locks.release(job_id=job_id, editor_id=principal.user_id)
    return ReleaseLockResponse(job_id=job_id, released=released)


@router.post(
    "/jobs/{jobId}/lock/refresh",
    response_model=ReviewLock,
    responses={403: {"model": ErrorResponse}, 409: {"model": LockNotHeldError}},
)
async def refresh_review_lock(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(require_editor)],
    locks: Annotated[ReviewLockManager, Depends(get_lock_manager)],
) -> ReviewLock:
    lock = locks.refresh(job_id=job_id, editor_id=principal.user_id)
    if lock is None:
        raise ApiError(
            status_code=409,
            code="LOCK_NOT_HELD",
            message="Review lock is no longer held by this editor",
            details={"job_id": job_id},
        )
    return ReviewLockManager.to_review_lock(lock)


@router.post(
    "/jobs/{jobId}/verify",
    response_model=Job,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": ReviewStateError},
    },
)
async def verify_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(require_editor)],
    jobs: Annotated[JobRegistry, Depends(get_job_registry)],
    locks: Annotated[ReviewLockManager, Depends(get_lock_manager)],
    payload: VerifyJobRequest | None = None,
) -> Job:
    edited_segments = payload.edited_segments if payload is not None else None
    record = locks.verify(job_id=job_id, editor_id=principal.user_id, edited_segments=edited_segments)
    if record is None:
        current = jobs.get(job_id)
        if current is None:
            raise not_found()
        raise _not_reviewable(current.status)
    return JobRegistry.to_job(record)
