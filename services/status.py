"""
Status projection and ops listing.

statuses_for() is the one status read every surface uses (student views,
teacher dashboards, trajectory views). It is total: every id asked about gets
an answer, and "no job row" is reported as NOT_REQUESTED, which is different
from PENDING.
"""

import logging
import uuid
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from models.enums import JobStatus, PublicStatus
from models.job import FeedbackJob

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100

_PUBLIC_BY_INTERNAL: dict[str, PublicStatus] = {
    JobStatus.PENDING.value: PublicStatus.PENDING,
    JobStatus.RUNNING.value: PublicStatus.RUNNING,
    JobStatus.SUCCEEDED.value: PublicStatus.SUCCEEDED,
    JobStatus.FAILED.value: PublicStatus.FAILED,
    JobStatus.DEAD.value: PublicStatus.DEAD,
}


def to_public_status(internal: Optional[str]) -> PublicStatus:
    """Map a stored status to the public enum. Unknown values never raise."""
    if internal is None:
        return PublicStatus.NOT_REQUESTED
    mapped = _PUBLIC_BY_INTERNAL.get(str(internal))
    if mapped is None:
        logger.debug(f"Unknown feedback job status: {internal!r}")
        return PublicStatus.NOT_REQUESTED
    return mapped


def statuses_for(session: Session, submission_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, PublicStatus]:
    ids = list(dict.fromkeys(submission_ids))
    statuses = {sid: PublicStatus.NOT_REQUESTED for sid in ids}
    if not ids:
        return statuses

    rows = session.execute(
        select(FeedbackJob.submission_id, FeedbackJob.status).where(
            FeedbackJob.submission_id.in_(ids)
        )
    ).all()
    for row in rows:
        statuses[row.submission_id] = to_public_status(row.status)
    return statuses


async def list_jobs(
    db: AsyncSession,
    status: Optional[JobStatus] = None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[FeedbackJob]:
    """Newest-first job listing for ops tooling. `limit` is bounded to 1..MAX_LIST_LIMIT."""
    limit = max(1, min(limit, MAX_LIST_LIMIT))
    query = select(FeedbackJob)
    if status:
        query = query.where(FeedbackJob.status == status.value)
    query = query.order_by(FeedbackJob.created_at.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())
