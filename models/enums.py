"""
Shared enumerations used across the entire project.

Using Python enums (inheriting from str) means:
- They serialize to JSON automatically ("PENDING", not "JobStatus.PENDING")
- They work as SQLAlchemy column values
- They work as FastAPI query parameters
- Typos become immediate errors instead of silent bugs
"""

import enum


class JobStatus(str, enum.Enum):
    PENDING = "PENDING"        # waiting to be claimed (first run or retry)
    RUNNING = "RUNNING"        # claimed by one worker, lease held
    SUCCEEDED = "SUCCEEDED"    # feedback persisted, terminal
    FAILED = "FAILED"          # legacy retry marker, never written by the pipeline
    DEAD = "DEAD"              # attempts exhausted, terminal until an ops requeue


class PublicStatus(str, enum.Enum):
    """What students, teachers and dashboards see for a submission."""

    NOT_REQUESTED = "NOT_REQUESTED"  # no job record exists
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    DEAD = "DEAD"


class ErrorCode(str, enum.Enum):
    """
    Closed set of normalized failure codes.

    Stored verbatim in FeedbackJob.last_error["code"] and read by the
    reporting side for error rollups, so values must never be renamed.
    """

    RATE_LIMIT_LOCAL = "RATE_LIMIT_LOCAL"        # admission declined
    RATE_LIMIT_UPSTREAM = "RATE_LIMIT_UPSTREAM"  # provider answered 429
    TIMEOUT = "TIMEOUT"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    UNKNOWN = "UNKNOWN"

    @property
    def is_rate_limit(self) -> bool:
        return self in (ErrorCode.RATE_LIMIT_LOCAL, ErrorCode.RATE_LIMIT_UPSTREAM)


class FeedbackSource(str, enum.Enum):
    AI = "AI"
    TEACHER = "TEACHER"
    SYSTEM = "SYSTEM"


class FeedbackType(str, enum.Enum):
    SYNTAX = "SYNTAX"
    STYLE = "STYLE"
    DESIGN = "DESIGN"
    BUG = "BUG"
    PERFORMANCE = "PERFORMANCE"
    SECURITY = "SECURITY"
    OTHER = "OTHER"


class FeedbackSeverity(str, enum.Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
