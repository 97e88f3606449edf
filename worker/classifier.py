"""
Turns whatever a job attempt raised into a normalized LastError.

    FeedbackProviderError        → its own code
    futures / httpx timeouts     → TIMEOUT
    anything else                → UNKNOWN

The result feeds both the retry handler (which only cares that it failed) and
reporting (which groups on the code). Messages are cut short: they are for ops
tooling, not for storing stack traces.
"""

from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass

import httpx

from models.enums import ErrorCode
from providers.base import FeedbackProviderError

MAX_MESSAGE_CHARS = 500


@dataclass
class LastError:
    code: ErrorCode
    message: str

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message[:MAX_MESSAGE_CHARS]}


def classify_failure(exc: BaseException) -> LastError:
    if isinstance(exc, FeedbackProviderError):
        return LastError(code=exc.code, message=str(exc))
    if isinstance(exc, (FuturesTimeoutError, httpx.TimeoutException)):
        return LastError(code=ErrorCode.TIMEOUT, message="AI_FEEDBACK_PROVIDER: TIMEOUT")
    detail = str(exc) or type(exc).__name__
    return LastError(code=ErrorCode.UNKNOWN, message=f"AI_FEEDBACK_PROVIDER: UNKNOWN ({detail})")
