"""
Submission-scoped feedback endpoints.

POST /submissions/{submission_id}/ai-feedback/request → ask for AI feedback manually

Submissions themselves are created elsewhere; this router only reads them.
The request is idempotent: asking twice returns the same job, never a second one.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import sessionmaker

from api.dependencies import get_session_factory
from api.schemas.feedback import RequestFeedbackBody, RequestFeedbackResponse
from models.submission import Submission
from services.enqueuer import ensure
from services.status import to_public_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post("/{submission_id}/ai-feedback/request", response_model=RequestFeedbackResponse)
def request_feedback(
    submission_id: UUID,
    body: Optional[RequestFeedbackBody] = None,
    session_factory: sessionmaker = Depends(get_session_factory),
) -> RequestFeedbackResponse:
    """
    Make sure the submission has a feedback job and report where it stands.

    If a job already exists (auto-enqueued on submit, or an earlier request),
    it is returned as is, whatever its state.
    """
    with session_factory() as session:
        submission = session.get(Submission, submission_id)
        if submission is None:
            raise HTTPException(status_code=404, detail=f"Submission {submission_id} not found")

    result = ensure(session_factory, submission)
    if body is not None and body.reason:
        logger.info(f"Manual feedback request: submission_id={submission_id}, reason={body.reason!r}")

    return RequestFeedbackResponse(
        submission_id=submission_id,
        job_id=result.job_id,
        status=result.status,
        ai_feedback_status=to_public_status(result.status.value),
    )
