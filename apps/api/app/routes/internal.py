"""Internal callback routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from app.routes.dependencies import get_internal_callback_service, require_callback_secret
from app.schemas.error import ErrorResponse, FsmTransitionError, NoLeakNotFoundError
from app.schemas.internal import TranscriptionCallbackRequest
from app.services.internal_callbacks import InternalCallbackService

router = APIRouter(prefix="/internal", tags=["Internal"])


@router.post(
    "/jobs/{jobId}/transcription",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": FsmTransitionError | ErrorResponse},
        204: {"description": "Job status updated"},
    },
)
async def post_transcription_callback(
    jobId: str,
    payload: TranscriptionCallbackRequest,
    __: Annotated[None, Depends(require_callback_secret)],
    callback_service: Annotated[InternalCallbackService, Depends(get_internal_callback_service)],
) -> Response:
    callback_service.process_transcription_callback(job_id=jobId, payload=payload)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
