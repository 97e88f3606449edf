"""
Enqueuer — creates the one FeedbackJob a submission is allowed to have.

Two entry points:
- enqueue(): fire-and-forget, called right after a submission is created.
  A duplicate-key conflict means the job already exists, which is exactly the
  state we wanted, so it is swallowed.
- ensure(): synchronous, called by the manual "request feedback" action. It
  returns the existing job if there is one, otherwise creates it; if another
  request wins the insert race, it re-reads and returns the winner.

Both rely on the unique index on ai_feedback_jobs.submission_id. A read before
the insert is only a shortcut; the unique index decides who wins.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from models.base import utc_now
from models.enums import JobStatus
from models.job import FeedbackJob
from models.submission import Submission

logger = logging.getLogger(__name__)


@dataclass
class EnsureResult:
    job_id: uuid.UUID
    status: JobStatus


def _new_job(submission: Submission) -> FeedbackJob:
    now = utc_now()
    return FeedbackJob(
        submission_id=submission.id,
        task_id=submission.task_id,
        classroom_task_id=submission.classroom_task_id,
        student_id=submission.student_id,
        status=JobStatus.PENDING.value,
        attempts=0,
        max_attempts=settings.FEEDBACK_MAX_ATTEMPTS,
        not_before=now,
        created_at=now,
        updated_at=now,
    )


def _find(session: Session, submission_id: uuid.UUID) -> Optional[EnsureResult]:
    row = session.execute(
        select(FeedbackJob.id, FeedbackJob.status).where(
            FeedbackJob.submission_id == submission_id
        )
    ).one_or_none()
    if row is None:
        return None
    return EnsureResult(job_id=row.id, status=JobStatus(row.status))


def enqueue(session_factory: sessionmaker, submission: Submission) -> None:
    """Create a PENDING job for the submission; a job that already exists is not an error."""
    with session_factory() as session:
        session.add(_new_job(submission))
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.debug(f"Feedback job already exists for submission_id={submission.id}")
            return
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to enqueue feedback job for submission_id={submission.id}: {e}")
            raise
    logger.info(f"Enqueued feedback job for submission_id={submission.id}")


def ensure(session_factory: sessionmaker, submission: Submission) -> EnsureResult:
    """Return the submission's job, creating it if needed. Never creates a second one."""
    with session_factory() as session:
        existing = _find(session, submission.id)
        if existing is not None:
            return existing

        job = _new_job(submission)
        session.add(job)
        try:
            session.commit()
            return EnsureResult(job_id=job.id, status=JobStatus(job.status))
        except IntegrityError:
            session.rollback()
            winner = _find(session, submission.id)
            if winner is None:
                raise
            logger.debug(f"Lost ensure race for submission_id={submission.id}, returning existing job")
            return winner


def should_auto_enqueue(attempt_no: int) -> bool:
    if not settings.FEEDBACK_AUTO_ON_SUBMIT:
        return False
    if settings.FEEDBACK_AUTO_ON_FIRST_ATTEMPT_ONLY:
        return attempt_no == 1
    return True


def enqueue_on_submit(session_factory: sessionmaker, submission: Submission) -> bool:
    """
    Hook for the submission-creation path.

    Applies the auto-enqueue toggles and returns whether a job was requested.
    Store errors are logged, never raised: a failed enqueue must not fail the
    submission itself (the student can still request feedback manually).
    """
    if not should_auto_enqueue(submission.attempt_no):
        return False
    try:
        enqueue(session_factory, submission)
    except Exception as e:
        logger.warning(
            f"Submission {submission.id} saved without a feedback job ({e}); it can be requested manually"
        )
        return False
    return True


class JobNotFoundError(LookupError):
    pass


class JobStateConflictError(RuntimeError):
    pass


def requeue_dead(session_factory: sessionmaker, job_id: uuid.UUID) -> FeedbackJob:
    """
    Ops action: give a DEAD job a fresh set of attempts.

    This is the only way out of DEAD. last_error is kept so the history of why
    the job died stays visible until the next attempt overwrites it.
    """
    now = utc_now()
    with session_factory() as session:
        result = session.execute(
            update(FeedbackJob)
            .where(FeedbackJob.id == job_id, FeedbackJob.status == JobStatus.DEAD.value)
            .values(
                status=JobStatus.PENDING.value,
                attempts=0,
                not_before=now,
                locked_at=None,
                lock_owner=None,
                updated_at=now,
            )
        )
        if result.rowcount == 1:
            session.commit()
            logger.info(f"Requeued dead feedback job {job_id}")
            return session.get(FeedbackJob, job_id)

        session.rollback()
        status = session.execute(
            select(FeedbackJob.status).where(FeedbackJob.id == job_id)
        ).scalar_one_or_none()
        if status is None:
            raise JobNotFoundError(f"Feedback job {job_id} not found")
        raise JobStateConflictError(
            f"Cannot requeue job in {status} state. Only DEAD jobs can be requeued."
        )
