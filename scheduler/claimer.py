"""
Claimer — atomically moves eligible jobs from PENDING to RUNNING for one worker.

The only mutual exclusion in the system is here: each job is claimed with a
single conditional UPDATE

    UPDATE ai_feedback_jobs
       SET status='RUNNING', locked_at=:now, lock_owner=:worker
     WHERE id=:id AND status='PENDING'

and the claim counts only if exactly one row changed. Two workers can read the
same candidate, but only one of them can flip it; the other sees rowcount 0 and
moves on. There is never a read-then-write without that guard.

Order is best-effort oldest-created-first among jobs whose not_before has
passed. There is no global FIFO across workers.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import sessionmaker

from models.base import utc_now
from models.enums import JobStatus
from models.job import FeedbackJob
from scheduler.admission import AdmissionController

logger = logging.getLogger(__name__)


@dataclass
class ClaimedJob:
    """
    What a worker needs to process one claimed job.

    A plain DTO rather than the ORM row: it crosses thread boundaries and must
    not be tied to the session that claimed it.
    """
    job_id: uuid.UUID
    submission_id: uuid.UUID
    classroom_task_id: Optional[uuid.UUID]
    attempts: int
    max_attempts: int
    lock_owner: str
    locked_at: datetime
    slot_token: Optional[str] = None  # global admission slot, if one was taken


class JobClaimer:

    MIN_PAGE_SIZE = 20

    def __init__(self, db_session_factory: sessionmaker, clock: Callable = utc_now):
        self._db_session_factory = db_session_factory
        self._clock = clock

    def claim_batch(
        self,
        worker_id: str,
        limit: int,
        admission: Optional[AdmissionController] = None,
    ) -> list[ClaimedJob]:
        """
        Claim up to `limit` eligible jobs for `worker_id`.

        Returns only the jobs this call actually locked; fewer than `limit` is
        normal (scarcity, lost races, admission back-pressure). Store errors
        propagate. Jobs already claimed before an error stay RUNNING and are
        recovered by the stale-lease sweep, never re-claimed here.

        With an admission controller, every claimed job carries a global slot
        (ClaimedJob.slot_token) that the caller must release when done.
        """
        if limit <= 0:
            return []

        now = self._clock()
        claimed: list[ClaimedJob] = []
        throttled_scopes: set[Optional[uuid.UUID]] = set()
        saturated = False
        page_size = max(limit * 4, self.MIN_PAGE_SIZE)
        cursor: Optional[tuple[datetime, uuid.UUID]] = None

        with self._db_session_factory() as session:
            while len(claimed) < limit:
                query = (
                    select(FeedbackJob.id, FeedbackJob.classroom_task_id, FeedbackJob.created_at)
                    .where(
                        FeedbackJob.status == JobStatus.PENDING.value,
                        or_(FeedbackJob.not_before.is_(None), FeedbackJob.not_before <= now),
                    )
                    .order_by(FeedbackJob.created_at, FeedbackJob.id)
                    .limit(page_size)
                )
                if cursor is not None:
                    created_at, last_id = cursor
                    query = query.where(
                        or_(
                            FeedbackJob.created_at > created_at,
                            (FeedbackJob.created_at == created_at) & (FeedbackJob.id > last_id),
                        )
                    )
                candidates = session.execute(query).all()
                if not candidates:
                    break
                cursor = (candidates[-1].created_at, candidates[-1].id)

                for candidate in candidates:
                    if len(claimed) >= limit:
                        break
                    scope = candidate.classroom_task_id
                    if scope in throttled_scopes:
                        continue

                    token = f"{candidate.id}:{uuid.uuid4().hex[:8]}"
                    if admission is not None:
                        if not admission.try_acquire_slot(token):
                            saturated = True
                            break
                        if not admission.try_acquire(scope, token):
                            admission.release_slot(token)
                            throttled_scopes.add(scope)
                            continue

                    job = self._try_claim(session, candidate.id, worker_id, now)
                    if job is None:
                        if admission is not None:
                            admission.release(scope, token)
                            admission.release_slot(token)
                        continue
                    if admission is not None:
                        job.slot_token = token
                    claimed.append(job)

                if saturated or len(candidates) < page_size:
                    break

        if saturated:
            logger.debug(f"Global ceiling reached after claiming {len(claimed)} job(s)")
        if throttled_scopes:
            logger.debug(f"Skipped {len(throttled_scopes)} throttled classroom-task scope(s)")
        return claimed

    def _try_claim(self, session, job_id: uuid.UUID, worker_id: str, now: datetime) -> Optional[ClaimedJob]:
        result = session.execute(
            update(FeedbackJob)
            .where(FeedbackJob.id == job_id, FeedbackJob.status == JobStatus.PENDING.value)
            .values(
                status=JobStatus.RUNNING.value,
                locked_at=now,
                lock_owner=worker_id,
                updated_at=now,
            )
        )
        if result.rowcount != 1:
            session.rollback()
            logger.debug(f"Job {job_id} was claimed by another worker")
            return None
        session.commit()

        row = session.execute(
            select(
                FeedbackJob.submission_id,
                FeedbackJob.classroom_task_id,
                FeedbackJob.attempts,
                FeedbackJob.max_attempts,
            ).where(FeedbackJob.id == job_id)
        ).one()
        return ClaimedJob(
            job_id=job_id,
            submission_id=row.submission_id,
            classroom_task_id=row.classroom_task_id,
            attempts=row.attempts,
            max_attempts=row.max_attempts,
            lock_owner=worker_id,
            locked_at=now,
        )
