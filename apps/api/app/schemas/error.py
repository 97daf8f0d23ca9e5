"""API error response schemas."""

from datetime import datetime
from typing import Any
from typing import Literal

from pydantic import BaseModel

from app.schemas.job import JobStatus


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class TransitionErrorDetails(BaseModel):
    current_status: JobStatus
    attempted_status: JobStatus
    allowed_next_statuses: list[JobStatus] | None = None


class FsmTransitionError(BaseModel):
    code: Literal["FSM_TRANSITION_INVALID", "FSM_TERMINAL_IMMUTABLE", "LOCK_GOVERNED_STATUS"]
    message: str
    details: TransitionErrorDetails


class NoLeakNotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str


class LockHeldErrorDetails(BaseModel):
    job_id: str
    editor_name: str
    expires_at: datetime


class LockHeldError(BaseModel):
    code: Literal["LOCK_HELD"]
    message: str
    details: LockHeldErrorDetails


class LockNotHeldError(BaseModel):
    code: Literal["LOCK_NOT_HELD"]
    message: str
    details: dict[str, Any] | None = None


class ReviewStateErrorDetails(BaseModel):
    current_status: JobStatus


class ReviewStateError(BaseModel):
    code: Literal["JOB_NOT_REVIEWABLE"]
    message: str
    details: ReviewStateErrorDetails
