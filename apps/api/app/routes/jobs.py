"""Job routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Response, status

from app.errors import not_found
from app.repositories.records import JobRecord
from app.routes.dependencies import get_authenticated_principal, get_job_registry
from app.schemas.auth import AuthPrincipal
from app.schemas.error import ErrorResponse, FsmTransitionError, NoLeakNotFoundError
from app.schemas.job import CreateJobRequest, Job, JobStatus, UpdateJobRequest
from app.services.jobs import JobRegistry

router = APIRouter(prefix="/jobs", tags=["Jobs"])

_ROUTABLE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})


def load_visible_job(jobs: JobRegistry, principal: AuthPrincipal, job_id: str) -> JobRecord:
    """Owners see their jobs, editors see every job; anything else is a no-leak 404."""
    record = jobs.get(job_id)
    if record is None or (record.owner_id != principal.user_id and not principal.is_editor):
        raise not_found()
    return record


@router.post(
    "",
    response_model=Job,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"model": ErrorResponse}},
)
async def create_job(
    payload: CreateJobRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    jobs: Annotated[JobRegistry, Depends(get_job_registry)],
) -> Job:
    record = jobs.create(
        owner_id=principal.user_id,
        audio_url=payload.audio_url,
        request_review=payload.request_human_review,
        audio_file_name=payload.audio_file_name,
    )
    return JobRegistry.to_job(record)


@router.get("", response_model=list[Job])
async def list_jobs(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    jobs: Annotated[JobRegistry, Depends(get_job_registry)],
) -> list[Job]:
    records = jobs.list_all() if principal.is_admin else jobs.list_for_owner(principal.user_id)
    return [JobRegistry.to_job(record) for record in records]


@router.get(
    "/{jobId}",
    response_model=Job,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def get_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    jobs: Annotated[JobRegistry, Depends(get_job_registry)],
) -> Job:
    return JobRegistry.to_job(load_visible_job(jobs, principal, job_id))


@router.patch(
    "/{jobId}",
    response_model=Job,
    responses={404: {"model": NoLeakNotFoundError}, 409: {"model": FsmTransitionError}},
)
async def update_job(
    job_id: Annotated[str, Path(alias="jobId")],
    payload: UpdateJobRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    jobs: Annotated[JobRegistry, Depends(get_job_registry)],
) -> Job:
    record = jobs.get(job_id)
    if record is None or record.owner_id != principal.user_id:
        raise not_found()

    if payload.audio_file_name is not None:
        record = jobs.update(job_id, audio_file_name=payload.audio_file_name)
    if payload.request_human_review:
        record = jobs.request_review(job_id)
    elif payload.request_human_review is False and record is not None and record.status in _ROUTABLE_STATUSES:
        # Opting out only matters before the transcript has been routed.
        record = jobs.update(job_id, request_human_review=False)

    if record is None:
        raise not_found()
    return JobRegistry.to_job(record)


@router.delete(
    "/{jobId}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def delete_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    jobs: Annotated[JobRegistry, Depends(get_job_registry)],
) -> Response:
    record = jobs.get(job_id)
    if record is None or (record.owner_id != principal.user_id and not principal.is_admin):
        raise not_found()
    if not jobs.delete(job_id):
        raise not_found()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
