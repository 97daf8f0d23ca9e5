"""Internal callback service layer for the transcription backend."""

from dataclasses import dataclass
import logging

from app.core.logging_safety import safe_log_identifier
from app.errors import ApiError, not_found
from app.repositories.records import JobRecord
from app.schemas.internal import TranscriptionCallbackRequest
from app.schemas.job import JobStatus
from app.services.jobs import JobRegistry

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CallbackProcessResult:
    previous_status: JobStatus
    current_status: JobStatus


class InternalCallbackService:
    def __init__(self, jobs: JobRegistry) -> None:
        self._jobs = jobs

    def process_transcription_callback(
        self,
        *,
        job_id: str,
        payload: TranscriptionCallbackRequest,
    ) -> CallbackProcessResult:
        safe_correlation_id = safe_log_identifier(payload.correlation_id, prefix="cid")

        # Domain boundary: callbacks must target an existing job before state processing.
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning(
                "callback.rejected correlation_id=%s job_id=%s event=%s code=RESOURCE_NOT_FOUND",
                safe_correlation_id,
                job_id,
                payload.event,
            )
            raise not_found()

        if payload.event == "completed" and payload.transcript is None:
            logger.warning(
                "callback.rejected correlation_id=%s job_id=%s event=completed code=VALIDATION_ERROR",
                safe_correlation_id,
                job_id,
            )
            raise ApiError(
                status_code=409,
                code="VALIDATION_ERROR",
                message="Completed callbacks must carry a transcript",
            )

        previous_status = job.status
        try:
            updated = self._apply(job_id=job_id, payload=payload)
        except ApiError as exc:
            logger.warning(
                "callback.rejected correlation_id=%s job_id=%s event=%s code=%s current_status=%s",
                safe_correlation_id,
                job_id,
                payload.event,
                exc.payload.code,
                previous_status.value,
            )
            raise

        # Deleted between lookup and apply.
        if updated is None:
            raise not_found()

        logger.info(
            "callback.applied correlation_id=%s job_id=%s event=%s prev_status=%s new_status=%s",
            safe_correlation_id,
            job_id,
            payload.event,
            previous_status.value,
            updated.status.value,
        )
        return CallbackProcessResult(previous_status=previous_status, current_status=updated.status)

    def _apply(self, *, job_id: str, payload: TranscriptionCallbackRequest) -> JobRecord | None:
        if payload.event == "accepted":
            return self._jobs.mark_processing(job_id, external_job_id=payload.external_job_id)
        if payload.event == "completed":
            return self._jobs.record_transcript(
                job_id,
                transcript=payload.transcript,
                processing_time=payload.processing_time,
            )
        return self._jobs.mark_failed(job_id, message=payload.error)
