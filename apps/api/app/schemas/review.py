"""Review lock and review queue schemas."""

from datetime import datetime

from pydantic import BaseModel

from app.schemas.job import Job


class ReviewLock(BaseModel):
    job_id: str
    editor_id: str
    editor_name: str
    locked_at: datetime
    expires_at: datetime


class ReleaseLockResponse(BaseModel):
    job_id: str
    released: bool


class ReviewTask(BaseModel):
    job: Job
    lock: ReviewLock | None = None
    is_locked: bool
    is_locked_by_current_user: bool
