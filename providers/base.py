"""
Abstract base class for AI feedback providers.

Each provider (stub, openrouter) implements this interface.
The processor calls provider.analyze(request) without knowing which one it is —
it looks up the provider from the registry by name.

Same Strategy pattern as the rest of the codebase:
- AbstractFeedbackProvider = interface
- StubFeedbackProvider, OpenRouterFeedbackProvider = implementations
- registry.py = factory lookup

The provider call is opaque to the pipeline: one analyze() call is exactly one
job attempt. Any retrying a provider does internally (HTTP-level) is its own
business and is configured separately from job attempts.
"""

import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from models.enums import ErrorCode, FeedbackSeverity, FeedbackType


@dataclass
class FeedbackRequest:
    """
    Everything a provider needs to review one submission.

    code_text is already truncated to the configured ceiling; original_length
    and was_truncated tell the provider (and the prompt) that it happened.

    deadline is a time.monotonic() value set by the processor. Work a provider
    does after it has passed is wasted: the attempt is already recorded as
    TIMEOUT.
    """
    submission_id: uuid.UUID
    classroom_task_id: Optional[uuid.UUID]
    language: str
    code_text: str
    original_length: int
    attempt_no: Optional[int] = None
    ai_usage_declaration: Optional[str] = None
    deadline: Optional[float] = None

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is none."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    @property
    def was_truncated(self) -> bool:
        return self.original_length > len(self.code_text)


@dataclass
class FeedbackItem:
    type: FeedbackType
    severity: FeedbackSeverity
    message: str
    suggestion: Optional[str] = None
    tags: Optional[list[str]] = None
    score_hint: Optional[float] = None


class FeedbackProviderError(Exception):
    """
    Raised by providers for any failure they can name.

    `code` is the normalized ErrorCode stored on the job. `retryable` only
    tells the provider's own HTTP retry loop whether another try is worth it;
    the job state machine retries every code until attempts run out.
    """

    def __init__(self, code: ErrorCode, message: str = "", retryable: bool = True):
        self.code = code
        self.retryable = retryable
        super().__init__(message or f"AI_FEEDBACK_PROVIDER: {code.value}")


class AbstractFeedbackProvider(ABC):

    @abstractmethod
    def analyze(self, request: FeedbackRequest) -> list[FeedbackItem]:
        """
        Review one submission.

        Returns:
            feedback items, already normalized (known tags only).

        Raises:
            FeedbackProviderError for classified failures; anything else is
            recorded as UNKNOWN by the processor.
        """
        ...

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique identifier matching the FEEDBACK_PROVIDER setting."""
        ...

