"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., FEEDBACK_MAX_ATTEMPTS env var → Settings.FEEDBACK_MAX_ATTEMPTS)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

Every module imports `settings` from here instead of hardcoding values.
"""

from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── PostgreSQL ──────────────────────────────────────────────
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "feedback"
    POSTGRES_PASSWORD: str = "feedback"
    POSTGRES_DB: str = "feedback"

    # ── Redis ───────────────────────────────────────────────────
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # ── Worker loop ─────────────────────────────────────────────
    FEEDBACK_WORKER_ENABLED: bool = True
    FEEDBACK_WORKER_INTERVAL: float = 3.0            # seconds between process_once ticks
    FEEDBACK_WORKER_BATCH_SIZE: Optional[int] = None  # None → FEEDBACK_DEFAULT_BATCH_SIZE

    # ── Batches ─────────────────────────────────────────────────
    FEEDBACK_DEFAULT_BATCH_SIZE: int = 5
    FEEDBACK_MAX_BATCH_SIZE: int = 50

    # ── Retry / lease ───────────────────────────────────────────
    FEEDBACK_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    FEEDBACK_LEASE_TTL: float = 300.0               # seconds before a Running lease is stale
    FEEDBACK_BACKOFF_BASE: float = Field(30.0, gt=0)  # first retry delay (seconds)
    FEEDBACK_BACKOFF_MAX: float = Field(600.0, gt=0)  # upper bound for any retry delay
    FEEDBACK_RATE_LIMIT_MIN_BACKOFF: float = 30.0   # floor for rate-limit failures
    FEEDBACK_BACKOFF_JITTER: float = Field(0.1, ge=0)  # fraction of the delay added at random

    # ── Admission control ───────────────────────────────────────
    FEEDBACK_MAX_CONCURRENCY: int = Field(default=2, ge=1, le=20)
    FEEDBACK_MAX_PER_CLASSROOM_TASK_PER_MINUTE: int = Field(default=30, ge=1, le=600)

    # ── Provider ────────────────────────────────────────────────
    FEEDBACK_PROVIDER: Literal["stub", "openrouter"] = "stub"
    FEEDBACK_REAL_ENABLED: bool = False
    FEEDBACK_PROVIDER_TIMEOUT: float = 15.0         # seconds, one call = one job attempt
    FEEDBACK_MAX_CODE_CHARS: int = Field(default=12000, ge=1)
    FEEDBACK_MAX_ITEMS: int = Field(default=20, ge=1, le=100)

    OPENROUTER_API_KEY: Optional[str] = None
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_MODEL: str = "openai/gpt-4o-mini"
    OPENROUTER_HTTP_REFERER: str = "https://eduforge.local"
    OPENROUTER_X_TITLE: str = "EduForge"
    OPENROUTER_MAX_RETRIES: int = Field(default=2, ge=0)  # provider-level, not job attempts

    # ── Enqueue toggles ─────────────────────────────────────────
    FEEDBACK_AUTO_ON_SUBMIT: bool = True
    FEEDBACK_AUTO_ON_FIRST_ATTEMPT_ONLY: bool = True

    # ── Ops ─────────────────────────────────────────────────────
    FEEDBACK_DEBUG_ENABLED: bool = False

    # ── App ─────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @model_validator(mode="after")
    def _check_provider_credentials(self) -> "Settings":
        if (
            self.FEEDBACK_PROVIDER == "openrouter"
            and self.FEEDBACK_REAL_ENABLED
            and not self.OPENROUTER_API_KEY
        ):
            raise ValueError(
                "OPENROUTER_API_KEY is required when FEEDBACK_PROVIDER=openrouter "
                "and FEEDBACK_REAL_ENABLED=true"
            )
        return self

    @property
    def database_url(self) -> str:
        """Async connection string for FastAPI (uses asyncpg driver)."""
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def sync_database_url(self) -> str:
        """Sync connection string for worker threads (uses psycopg2 driver)."""
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton: import this everywhere
settings = Settings()
