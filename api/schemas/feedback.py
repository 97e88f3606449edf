"""
Pydantic schemas for the AI feedback endpoints.

These are NOT database models — they define the HTTP API contract:
- RequestFeedbackBody / RequestFeedbackResponse: manual feedback request
- StatusesResponse: public status per submission id
- FeedbackJobResponse: one job row, ops view (raw error included)
- ProcessOnceBody / ProcessResultResponse: run one batch on demand
- DeadLetterResponse: entries mirrored in the Redis dead-letter list

FastAPI validates incoming data against these automatically.
If someone sends batch_size=0, FastAPI returns a 422 error before our code even runs.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from config.settings import settings
from models.enums import JobStatus, PublicStatus
from models.job import FeedbackJob
from services.error_codes import extract_error_code


class RequestFeedbackBody(BaseModel):
    """Request body for POST /submissions/{id}/ai-feedback/request."""

    reason: Optional[str] = Field(
        default=None,
        max_length=200,
        examples=["Student asked for a second look"],
    )


class RequestFeedbackResponse(BaseModel):
    submission_id: UUID
    job_id: UUID
    status: JobStatus
    ai_feedback_status: PublicStatus


class StatusesResponse(BaseModel):
    """Public status keyed by submission id. Every id asked about is present."""

    statuses: dict[UUID, PublicStatus]


class FeedbackJobResponse(BaseModel):
    """One feedback job as the ops endpoints see it."""

    id: UUID
    submission_id: UUID
    task_id: UUID
    classroom_task_id: Optional[UUID] = None
    student_id: UUID
    status: str
    attempts: int
    max_attempts: int
    not_before: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    lock_owner: Optional[str] = None
    last_error: Optional[dict] = None
    error_code: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_job(cls, job: FeedbackJob) -> "FeedbackJobResponse":
        response = cls.model_validate(job)
        code = extract_error_code(job.last_error)
        response.error_code = code.value if code else None
        return response


class FeedbackJobListResponse(BaseModel):
    jobs: list[FeedbackJobResponse]
    limit: int


class ProcessOnceBody(BaseModel):
    """Request body for POST /ai-feedback/jobs/process-once. Omit batch_size for the default."""

    batch_size: Optional[int] = Field(
        default=None,
        ge=1,
        le=settings.FEEDBACK_MAX_BATCH_SIZE,
    )


class ProcessResultResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int
    dead: int


class DeadLetterResponse(BaseModel):
    entries: list[dict]
    total: int
