"""Internal callback schemas."""

from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.job import Transcript


class TranscriptionCallbackRequest(BaseModel):
    """Status report pushed by the speech-to-text backend."""

    event: Literal["accepted", "completed", "failed"]
    external_job_id: str | None = None
    transcript: Transcript | None = None
    processing_time: float | None = Field(default=None, ge=0)
    error: str | None = None
    correlation_id: str
