"""
AI feedback endpoints.

GET  /ai-feedback/statuses                  → public status for a set of submissions

Ops endpoints, 404 unless FEEDBACK_DEBUG_ENABLED:
GET  /ai-feedback/jobs                      → newest-first job listing, optional status filter
POST /ai-feedback/jobs/process-once         → run one batch now, in this process
GET  /ai-feedback/jobs/dead-letter          → entries from the Redis dead-letter list
POST /ai-feedback/jobs/{job_id}/requeue     → give a DEAD job a fresh set of attempts

The statuses endpoint is the only one consumers should poll. It never shows
raw error text; the ops listing does.
"""

import json
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from api.dependencies import (
    get_db,
    get_processor,
    get_redis,
    get_session_factory,
    require_debug_enabled,
)
from api.schemas.feedback import (
    DeadLetterResponse,
    FeedbackJobListResponse,
    FeedbackJobResponse,
    ProcessOnceBody,
    ProcessResultResponse,
    StatusesResponse,
)
from models.enums import JobStatus
from services.enqueuer import JobNotFoundError, JobStateConflictError, requeue_dead
from services.status import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT, list_jobs, statuses_for
from worker.processor import FeedbackProcessor, InvalidBatchSizeError
from worker.retry import RetryHandler

router = APIRouter(prefix="/ai-feedback", tags=["ai-feedback"])


@router.get("/statuses", response_model=StatusesResponse)
def get_statuses(
    submission_id: list[UUID] = Query(default=[], description="Repeat for several submissions"),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> StatusesResponse:
    """NOT_REQUESTED for any submission that has no job yet."""
    with session_factory() as session:
        return StatusesResponse(statuses=statuses_for(session, submission_id))


# ── Ops ─────────────────────────────────────────────────────────

ops = APIRouter(prefix="/jobs", dependencies=[Depends(require_debug_enabled)])


@ops.get("", response_model=FeedbackJobListResponse)
async def get_jobs(
    status: Optional[JobStatus] = Query(None, description="Filter by job status"),
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    db: AsyncSession = Depends(get_db),
) -> FeedbackJobListResponse:
    jobs = await list_jobs(db, status=status, limit=limit)
    return FeedbackJobListResponse(
        jobs=[FeedbackJobResponse.from_job(j) for j in jobs],
        limit=limit,
    )


@ops.post("/process-once", response_model=ProcessResultResponse)
def process_once(
    body: Optional[ProcessOnceBody] = None,
    processor: FeedbackProcessor = Depends(get_processor),
) -> ProcessResultResponse:
    """
    Run one processing round synchronously and report what happened.

    Handy in development when no worker process is running. Safe to call while
    workers are running too: claims are conditional, admission is shared.
    """
    batch_size = body.batch_size if body is not None else None
    try:
        result = processor.process_once(batch_size)
    except InvalidBatchSizeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return ProcessResultResponse(**result.to_dict())


@ops.get("/dead-letter", response_model=DeadLetterResponse)
async def get_dead_letter_queue(
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    redis: Redis = Depends(get_redis),
) -> DeadLetterResponse:
    """
    Most recent dead-letter entries, newest first.

    The list is a mirror for ops tooling. The job table stays authoritative:
    a requeued job keeps its old entry here.
    """
    total = await redis.llen(RetryHandler.REDIS_DLQ_KEY)
    raw_entries = await redis.lrange(RetryHandler.REDIS_DLQ_KEY, -limit, -1)
    entries = [json.loads(entry) for entry in reversed(raw_entries)]
    return DeadLetterResponse(entries=entries, total=total)


@ops.post("/{job_id}/requeue", response_model=FeedbackJobResponse)
def requeue_job(
    job_id: UUID,
    session_factory: sessionmaker = Depends(get_session_factory),
) -> FeedbackJobResponse:
    try:
        job = requeue_dead(session_factory, job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except JobStateConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return FeedbackJobResponse.from_job(job)


router.include_router(ops)
