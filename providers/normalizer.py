"""
Feedback item normalization shared by every provider.

Tags are free text coming back from a model, so they are folded onto a closed
list: lowercased, spaces/underscores turned into dashes, and anything unknown
becomes "other". Reporting groups on these tags, so the list is part of the
contract with the reporting side.
"""

import re
from typing import Iterable, Optional

from providers.base import FeedbackItem

FEEDBACK_TAGS: tuple[str, ...] = (
    "readability",
    "naming",
    "style",
    "formatting",
    "complexity",
    "duplication",
    "edge-cases",
    "null-safety",
    "exception-safety",
    "performance",
    "memory",
    "security",
    "correctness",
    "bug-risk",
    "maintainability",
    "testability",
    "api-design",
    "abstraction",
    "encapsulation",
    "coupling",
    "cohesion",
    "concurrency",
    "io",
    "algorithm",
    "data-structure",
    "documentation",
    "logging",
    "error-handling",
    "validation",
    "input-sanitization",
    "resource-management",
    "time-complexity",
    "space-complexity",
    "readability-comments",
    "modularity",
    "dead-code",
    "unused",
    "other",
)

_KNOWN_TAGS = frozenset(FEEDBACK_TAGS)
_SEPARATORS = re.compile(r"[ _]+")
_DASH_RUNS = re.compile(r"-+")


def _clean_tag(tag: str) -> str:
    cleaned = tag.strip().lower()
    if not cleaned:
        return ""
    return _DASH_RUNS.sub("-", _SEPARATORS.sub("-", cleaned))


def normalize_tags(tags: Optional[Iterable[str]]) -> Optional[list[str]]:
    """Map raw tags onto FEEDBACK_TAGS, preserving first-seen order."""
    if not tags:
        return None

    normalized: dict[str, None] = {}
    for tag in tags:
        cleaned = _clean_tag(tag)
        if not cleaned:
            continue
        normalized[cleaned if cleaned in _KNOWN_TAGS else "other"] = None

    return list(normalized) or None


def normalize_feedback_items(items: Iterable[FeedbackItem]) -> list[FeedbackItem]:
    return [
        FeedbackItem(
            type=item.type,
            severity=item.severity,
            message=item.message,
            suggestion=item.suggestion,
            tags=normalize_tags(item.tags),
            score_hint=item.score_hint,
        )
        for item in items
    ]
