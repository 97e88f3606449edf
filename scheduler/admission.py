"""
Admission controller — decides how many jobs may START this round.

Two ceilings, checked before a job is claimed:

    allowance = min(global_ceiling - running_count,
                    per_classroom_task_ceiling - recent_starts_for_task)

- Global: slots in a Redis sorted set, one per job from its claim until its
  provider call has really returned. A slot is reserved with the same
  add-then-check as the window, so concurrent rounds share one ceiling.
  RUNNING jobs with a live lease in the job store count too; headroom uses
  the larger of the two.
- Per classroom-task: starts in a trailing one-minute window, kept in a Redis
  sorted set per scope. Bounds bursts (a whole class submitting at once must
  not saturate the provider).

A scope with no allowance is simply skipped: its jobs stay PENDING and are
picked up on a later call. That is back-pressure, not an error, and it does
not spend an attempt.

Why Redis for the window instead of an in-process counter?
Several processor invocations can run at once (separate processes, overlapping
timer ticks). A sorted set updated in one MULTI/EXEC block gives every one of
them the same view, and the key TTL cleans up scopes that went quiet.
"""

import logging
import uuid
from datetime import timedelta
from typing import Callable, Optional

from redis import Redis
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from config.settings import settings
from models.base import utc_now
from models.enums import ErrorCode, JobStatus
from models.job import FeedbackJob

logger = logging.getLogger(__name__)


class AdmissionController:

    WINDOW_SECONDS = 60
    KEY_PREFIX = "feedbackjobs:admission:"
    SLOTS_KEY = "feedbackjobs:admission:global"
    NO_SCOPE = "no-classroom-task"

    def __init__(
        self,
        redis_client: Redis,
        global_ceiling: Optional[int] = None,
        per_task_ceiling: Optional[int] = None,
        clock: Callable = utc_now,
    ):
        self._redis = redis_client
        self._global_ceiling = global_ceiling or settings.FEEDBACK_MAX_CONCURRENCY
        self._per_task_ceiling = (
            per_task_ceiling or settings.FEEDBACK_MAX_PER_CLASSROOM_TASK_PER_MINUTE
        )
        self._clock = clock

    def _key(self, classroom_task_id: Optional[uuid.UUID]) -> str:
        scope = str(classroom_task_id) if classroom_task_id else self.NO_SCOPE
        return f"{self.KEY_PREFIX}{scope}"

    # ── Global ──────────────────────────────────────────────────

    def running_count(self, session: Session) -> int:
        """RUNNING jobs whose lease is still live. Stale leases don't hold capacity."""
        cutoff = self._clock() - timedelta(seconds=settings.FEEDBACK_LEASE_TTL)
        return session.execute(
            select(func.count(FeedbackJob.id)).where(
                FeedbackJob.status == JobStatus.RUNNING.value,
                FeedbackJob.locked_at > cutoff,
            )
        ).scalar() or 0

    def held_slots(self) -> int:
        """Global slots in use. A slot older than the lease TTL counts as abandoned."""
        cutoff = self._clock().timestamp() - settings.FEEDBACK_LEASE_TTL
        pipe = self._redis.pipeline(transaction=True)
        pipe.zremrangebyscore(self.SLOTS_KEY, "-inf", f"({cutoff}")
        pipe.zcard(self.SLOTS_KEY)
        _, count = pipe.execute()
        return int(count)

    def global_headroom(self, session: Session) -> int:
        return self._global_ceiling - max(self.running_count(session), self.held_slots())

    def try_acquire_slot(self, token: str) -> bool:
        """Reserve one global slot. Same add-then-check as try_acquire()."""
        now = self._clock().timestamp()
        pipe = self._redis.pipeline(transaction=True)
        pipe.zremrangebyscore(self.SLOTS_KEY, "-inf", f"({now - settings.FEEDBACK_LEASE_TTL}")
        pipe.zadd(self.SLOTS_KEY, {token: now})
        pipe.zcard(self.SLOTS_KEY)
        _, _, count = pipe.execute()

        if count > self._global_ceiling:
            self._redis.zrem(self.SLOTS_KEY, token)
            logger.debug(
                f"Admission declined: global slots in use={count - 1}, ceiling={self._global_ceiling}"
            )
            return False
        return True

    def release_slot(self, token: str) -> None:
        self._redis.zrem(self.SLOTS_KEY, token)

    # ── Per classroom-task window ───────────────────────────────

    def recent_starts(self, classroom_task_id: Optional[uuid.UUID]) -> int:
        key = self._key(classroom_task_id)
        cutoff = self._clock().timestamp() - self.WINDOW_SECONDS
        pipe = self._redis.pipeline(transaction=True)
        pipe.zremrangebyscore(key, "-inf", f"({cutoff}")
        pipe.zcard(key)
        _, count = pipe.execute()
        return int(count)

    def allowance(self, session: Session, classroom_task_id: Optional[uuid.UUID]) -> int:
        """
        How many more jobs of this scope could start right now.

        Read-only view for ops and reporting. Claiming never relies on it: only
        the try_acquire_slot() and try_acquire() reservations are race-free.
        """
        return min(
            self.global_headroom(session),
            self._per_task_ceiling - self.recent_starts(classroom_task_id),
        )

    def try_acquire(self, classroom_task_id: Optional[uuid.UUID], token: str) -> bool:
        """
        Record one start for the scope if the window has room.

        Add-then-check inside one transaction, so two workers racing for the
        last slot can't both get it: the one that pushes the count over the
        ceiling takes its token back out.
        """
        key = self._key(classroom_task_id)
        now = self._clock().timestamp()
        pipe = self._redis.pipeline(transaction=True)
        pipe.zremrangebyscore(key, "-inf", f"({now - self.WINDOW_SECONDS}")
        pipe.zadd(key, {token: now})
        pipe.zcard(key)
        pipe.expire(key, self.WINDOW_SECONDS * 2)
        _, _, count, _ = pipe.execute()

        if count > self._per_task_ceiling:
            self._redis.zrem(key, token)
            logger.debug(
                f"Admission declined: classroom_task_id={classroom_task_id or 'n/a'}, "
                f"starts_in_window={count - 1}, ceiling={self._per_task_ceiling}, "
                f"code={ErrorCode.RATE_LIMIT_LOCAL.value}"
            )
            return False
        return True

    def release(self, classroom_task_id: Optional[uuid.UUID], token: str) -> None:
        """Give back a slot taken by try_acquire() when the claim itself lost a race."""
        self._redis.zrem(self._key(classroom_task_id), token)
