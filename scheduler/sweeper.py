"""
Stale-lease sweeper — recovers jobs left RUNNING by a crashed or stalled worker.

There is no way to cancel a RUNNING job from outside, so a worker that dies
mid-job leaves its lease behind. Any RUNNING job whose locked_at is older than
FEEDBACK_LEASE_TTL is treated as a failed attempt with code TIMEOUT and goes
through the normal retry path: back to PENDING with attempts+1, or DEAD when
that was the last attempt. Counting it as an attempt is what stops a job that
crashes its worker every time from looping forever.

Each reclaim is the same lock_owner-guarded update the worker itself would
use, so if the original worker wakes up and finishes, exactly one of the two
writes wins.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from sqlalchemy import or_, select
from sqlalchemy.orm import sessionmaker

from config.settings import settings
from models.base import utc_now
from models.enums import ErrorCode, JobStatus
from models.job import FeedbackJob
from scheduler.claimer import ClaimedJob
from worker.classifier import LastError
from worker.retry import RetryHandler

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    requeued: int = 0
    dead: int = 0


class StaleLeaseSweeper:

    BATCH_LIMIT = 100

    def __init__(
        self,
        db_session_factory: sessionmaker,
        retry_handler: RetryHandler,
        clock: Callable = utc_now,
    ):
        self._db_session_factory = db_session_factory
        self._retry_handler = retry_handler
        self._clock = clock

    def sweep(self) -> SweepResult:
        result = SweepResult()
        cutoff = self._clock() - timedelta(seconds=settings.FEEDBACK_LEASE_TTL)

        with self._db_session_factory() as session:
            stale = session.execute(
                select(FeedbackJob)
                .where(
                    FeedbackJob.status == JobStatus.RUNNING.value,
                    or_(FeedbackJob.locked_at.is_(None), FeedbackJob.locked_at < cutoff),
                )
                .order_by(FeedbackJob.locked_at)
                .limit(self.BATCH_LIMIT)
            ).scalars().all()

            for row in stale:
                job = ClaimedJob(
                    job_id=row.id,
                    submission_id=row.submission_id,
                    classroom_task_id=row.classroom_task_id,
                    attempts=row.attempts,
                    max_attempts=row.max_attempts,
                    lock_owner=row.lock_owner,
                    locked_at=row.locked_at,
                )
                error = LastError(
                    code=ErrorCode.TIMEOUT,
                    message=(
                        f"AI_FEEDBACK_PROVIDER: TIMEOUT (lease expired, "
                        f"owner={row.lock_owner}, locked_at={row.locked_at})"
                    ),
                )
                new_status = self._retry_handler.handle_failure(session, job, error)
                if new_status is JobStatus.DEAD:
                    result.dead += 1
                elif new_status is JobStatus.PENDING:
                    result.requeued += 1

        if result.requeued or result.dead:
            logger.warning(
                f"Reclaimed stale leases: requeued={result.requeued}, dead={result.dead}"
            )
        return result
