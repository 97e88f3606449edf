"""
FeedbackJob ORM model — maps to the "ai_feedback_jobs" table.

One row per submission, ever. The unique index on submission_id is what makes
enqueue idempotent: the second insert for the same submission fails with an
IntegrityError instead of creating a twin job.

Key design decisions:
- UUID primary key, same as every other table here
- attempts + max_attempts: drive the retry/dead-letter logic
- not_before: earliest time the claimer may pick the job up (retry backoff)
- locked_at + lock_owner: the lease, both set while RUNNING, both NULL otherwise
- last_error: JSON {"code": ..., "message": ...}; the code is an ErrorCode value
  so reporting can group on it without parsing free text
- Rows are never deleted — dashboards and metrics read them for audit
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, JSON, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, utc_now
from models.enums import JobStatus


class FeedbackJob(Base):
    __tablename__ = "ai_feedback_jobs"
    __table_args__ = (
        CheckConstraint("attempts >= 0", name="ck_ai_feedback_jobs_attempts_non_negative"),
        CheckConstraint("max_attempts >= 1", name="ck_ai_feedback_jobs_max_attempts_positive"),
        CheckConstraint("attempts <= max_attempts", name="ck_ai_feedback_jobs_attempts_bounded"),
        # claimer: status + eligibility, oldest first
        Index("ix_ai_feedback_jobs_claim", "status", "not_before", "created_at"),
        # admission and reporting, scoped by classroom task
        Index("ix_ai_feedback_jobs_ct_status", "classroom_task_id", "status"),
        Index("ix_ai_feedback_jobs_ct_created", "classroom_task_id", "created_at"),
        Index("ix_ai_feedback_jobs_ct_updated", "classroom_task_id", "updated_at"),
    )

    # ── Identity ────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, unique=True)
    task_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    classroom_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # ── State machine ───────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.PENDING.value, nullable=False, index=True
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    not_before: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # ── Lease ───────────────────────────────────────────────────
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    lock_owner: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    last_error: Mapped[Optional[dict]] = mapped_column(
        JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql"),
        nullable=True,
    )

    # ── Timestamps ──────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<FeedbackJob {self.id} submission={self.submission_id} {self.status}>"
