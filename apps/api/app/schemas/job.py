"""Job API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PENDING_REVIEW = "pending_review"
    IN_REVIEW = "in_review"
    VERIFIED = "verified"


class TranscriptSegment(BaseModel):
    id: int = Field(ge=0)
    start_time: str
    end_time: str
    type: str
    text: str


class Transcript(BaseModel):
    duration: float = Field(ge=0)
    language: str
    text: str = ""
    segments: list[TranscriptSegment]


class Job(BaseModel):
    id: str
    owner_id: str
    audio_url: str
    audio_file_name: str
    external_job_id: str | None = None
    status: JobStatus
    request_human_review: bool
    transcript: Transcript | None = None
    edited_transcript: Transcript | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    verified_at: datetime | None = None
    verified_by: str | None = None
    failure_message: str | None = None
    processing_time: float | None = None


class CreateJobRequest(BaseModel):
    audio_url: str = Field(min_length=1)
    audio_file_name: str | None = None
    request_human_review: bool = False


class UpdateJobRequest(BaseModel):
    request_human_review: bool | None = None
    audio_file_name: str | None = Field(default=None, min_length=1)


class VerifyJobRequest(BaseModel):
    edited_segments: list[TranscriptSegment] | None = None
