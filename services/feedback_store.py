"""
Persists AI feedback items for a submission.

Jobs run at-least-once (a reclaimed lease can mean the provider is called
twice for one submission), so writes must be idempotent. The unique constraint
on (submission_id, source, type, severity, message) does the real work; each
insert runs in its own SAVEPOINT so one duplicate doesn't undo the others.
"""

import logging
import uuid
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.enums import FeedbackSource
from models.submission import Feedback
from providers.base import FeedbackItem

logger = logging.getLogger(__name__)


def save_feedback(session: Session, submission_id: uuid.UUID, items: Iterable[FeedbackItem]) -> int:
    """Insert new items for the submission, skipping ones already stored. Returns how many were added."""
    existing = {
        (row.type, row.severity, row.message)
        for row in session.execute(
            select(Feedback.type, Feedback.severity, Feedback.message).where(
                Feedback.submission_id == submission_id,
                Feedback.source == FeedbackSource.AI.value,
            )
        )
    }

    saved = 0
    for item in items:
        key = (item.type.value, item.severity.value, item.message)
        if key in existing:
            continue
        existing.add(key)
        try:
            with session.begin_nested():
                session.add(Feedback(
                    submission_id=submission_id,
                    source=FeedbackSource.AI.value,
                    type=item.type.value,
                    severity=item.severity.value,
                    message=item.message,
                    suggestion=item.suggestion,
                    tags=item.tags,
                    score_hint=item.score_hint,
                ))
            saved += 1
        except IntegrityError:
            logger.debug(f"Duplicate AI feedback ignored: submission_id={submission_id}")

    return saved
