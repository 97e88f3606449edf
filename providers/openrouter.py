"""
OpenRouter chat-completions provider.

Flow for one analyze() call:
    1. Refuse early if real calls are disabled or no API key is configured
    2. POST system + user prompt to {base_url}/chat/completions (httpx)
    3. Parse choices[0].message.content as JSON (a ```json fence is tolerated)
    4. Validate against the item protocol and normalize tags

HTTP-level retries (OPENROUTER_MAX_RETRIES) happen inside this call for
retryable failures only. The pipeline never sees them: from the job's point of
view the whole call is one attempt, bounded by the processor's timeout.
Each try gets only what is left of request.deadline, and a retry is skipped
when the remaining time can't cover its backoff plus MIN_TRY_SECONDS.

Status mapping:
    429        → RATE_LIMIT_UPSTREAM (retryable)
    5xx        → PROVIDER_ERROR      (retryable)
    401/403/4xx→ PROVIDER_ERROR      (not retried here)
    timeout    → TIMEOUT             (retryable)
    bad JSON   → INVALID_RESPONSE    (not retried here)
"""

import json
import logging
import math
import re
import time
from typing import Any, Optional

import httpx

from config.settings import Settings, settings as default_settings
from models.enums import ErrorCode, FeedbackSeverity, FeedbackType
from providers.base import (
    AbstractFeedbackProvider,
    FeedbackItem,
    FeedbackProviderError,
    FeedbackRequest,
)
from providers.normalizer import normalize_feedback_items
from providers.prompts import (
    ALLOWED_ITEM_KEYS,
    ALLOWED_ROOT_KEYS,
    build_system_prompt,
    build_user_prompt,
)

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_ALLOWED_TYPES = {t.value for t in FeedbackType}
_ALLOWED_SEVERITIES = {s.value for s in FeedbackSeverity}


def _invalid(detail: str) -> FeedbackProviderError:
    return FeedbackProviderError(
        ErrorCode.INVALID_RESPONSE, f"AI_FEEDBACK_OPENROUTER: INVALID_RESPONSE ({detail})",
        retryable=False,
    )


class OpenRouterFeedbackProvider(AbstractFeedbackProvider):

    MIN_TRY_SECONDS = 1.0

    def __init__(self, config: Optional[Settings] = None, client: Optional[httpx.Client] = None):
        self._config = config or default_settings
        self._client = client or httpx.Client()

    @property
    def provider_name(self) -> str:
        return "openrouter"

    def analyze(self, request: FeedbackRequest) -> list[FeedbackItem]:
        config = self._config
        if not config.FEEDBACK_REAL_ENABLED:
            raise FeedbackProviderError(
                ErrorCode.PROVIDER_ERROR, "AI_FEEDBACK_OPENROUTER: REAL_DISABLED", retryable=False
            )
        if not config.OPENROUTER_API_KEY:
            raise FeedbackProviderError(
                ErrorCode.PROVIDER_ERROR, "AI_FEEDBACK_OPENROUTER: MISSING_API_KEY", retryable=False
            )

        start = time.monotonic()
        attempt = 0
        while True:
            try:
                content = self._call(request, self._try_timeout(request))
                items = self._parse_content(content)[: config.FEEDBACK_MAX_ITEMS]
                logger.debug(
                    f"OpenRouter feedback success: submission_id={request.submission_id}, "
                    f"model={config.OPENROUTER_MODEL}, "
                    f"duration_ms={(time.monotonic() - start) * 1000:.0f}, retried={attempt > 0}"
                )
                return items
            except FeedbackProviderError as e:
                attempt += 1
                delay = self._retry_delay(attempt)
                if (
                    not e.retryable
                    or attempt > config.OPENROUTER_MAX_RETRIES
                    or not self._has_budget(request, delay)
                ):
                    logger.warning(
                        f"OpenRouter feedback failed: submission_id={request.submission_id}, "
                        f"model={config.OPENROUTER_MODEL}, "
                        f"duration_ms={(time.monotonic() - start) * 1000:.0f}, "
                        f"tries={attempt}, error={e.code.value}"
                    )
                    raise
            time.sleep(delay)

    @staticmethod
    def _retry_delay(attempt: int) -> float:
        return min(4.0, 0.5 * (2 ** (attempt - 1)))

    def _try_timeout(self, request: FeedbackRequest) -> float:
        """HTTP timeout for one try: the configured timeout, cut to what is left of the deadline."""
        timeout = self._config.FEEDBACK_PROVIDER_TIMEOUT
        remaining = request.remaining()
        if remaining is None:
            return timeout
        if remaining <= 0:
            raise FeedbackProviderError(
                ErrorCode.TIMEOUT, "AI_FEEDBACK_OPENROUTER: DEADLINE_EXCEEDED", retryable=False
            )
        return min(timeout, remaining)

    def _has_budget(self, request: FeedbackRequest, delay: float) -> bool:
        """Whether a retry after `delay` seconds still leaves time for a useful try."""
        remaining = request.remaining()
        return remaining is None or remaining >= delay + self.MIN_TRY_SECONDS

    def _call(self, request: FeedbackRequest, timeout: float) -> str:
        config = self._config
        endpoint = f"{config.OPENROUTER_BASE_URL.rstrip('/')}/chat/completions"
        payload = {
            "model": config.OPENROUTER_MODEL,
            "messages": [
                {"role": "system", "content": build_system_prompt()},
                {"role": "user", "content": build_user_prompt(request)},
            ],
            "temperature": 0.2,
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Authorization": f"Bearer {config.OPENROUTER_API_KEY}",
            "Content-Type": "application/json",
            "HTTP-Referer": config.OPENROUTER_HTTP_REFERER,
            "X-Title": config.OPENROUTER_X_TITLE,
        }

        try:
            response = self._client.post(
                endpoint, json=payload, headers=headers, timeout=timeout
            )
        except httpx.TimeoutException as e:
            raise FeedbackProviderError(
                ErrorCode.TIMEOUT, "AI_FEEDBACK_OPENROUTER: TIMEOUT", retryable=True
            ) from e
        except httpx.HTTPError as e:
            raise FeedbackProviderError(
                ErrorCode.PROVIDER_ERROR, f"AI_FEEDBACK_OPENROUTER: NETWORK ({type(e).__name__})",
                retryable=True,
            ) from e

        if response.is_success:
            try:
                data = response.json()
            except ValueError as e:
                raise _invalid("body is not JSON") from e
            content = (((data or {}).get("choices") or [{}])[0].get("message") or {}).get("content")
            if not isinstance(content, str):
                raise _invalid("missing message content")
            return content

        raise self._map_http_error(response.status_code)

    @staticmethod
    def _map_http_error(status: int) -> FeedbackProviderError:
        if status == 429:
            return FeedbackProviderError(
                ErrorCode.RATE_LIMIT_UPSTREAM, "AI_FEEDBACK_OPENROUTER: RATE_LIMIT_UPSTREAM",
                retryable=True,
            )
        if status >= 500:
            return FeedbackProviderError(
                ErrorCode.PROVIDER_ERROR, f"AI_FEEDBACK_OPENROUTER: UPSTREAM_5XX ({status})",
                retryable=True,
            )
        if status in (401, 403):
            return FeedbackProviderError(
                ErrorCode.PROVIDER_ERROR, f"AI_FEEDBACK_OPENROUTER: UNAUTHORIZED ({status})",
                retryable=False,
            )
        return FeedbackProviderError(
            ErrorCode.PROVIDER_ERROR, f"AI_FEEDBACK_OPENROUTER: UPSTREAM_4XX ({status})",
            retryable=False,
        )

    # ── Response parsing ────────────────────────────────────────

    def _parse_content(self, content: str) -> list[FeedbackItem]:
        raw = content.strip()
        parsed = self._try_json(raw)
        if parsed is None:
            fenced = _FENCED_JSON.search(raw)
            if fenced:
                parsed = self._try_json(fenced.group(1).strip())
        if parsed is None:
            raise _invalid("content is not a JSON object")
        return self._validate(parsed)

    @staticmethod
    def _try_json(text: str) -> Optional[Any]:
        try:
            return json.loads(text)
        except ValueError:
            return None

    def _validate(self, parsed: Any) -> list[FeedbackItem]:
        if not isinstance(parsed, dict) or not parsed:
            raise _invalid("root must be a non-empty object")
        if any(key not in ALLOWED_ROOT_KEYS for key in parsed):
            raise _invalid("unexpected root key")

        items = parsed.get("items")
        if not isinstance(items, list):
            raise _invalid("items must be a list")
        if "meta" in parsed and not isinstance(parsed["meta"], dict):
            raise _invalid("meta must be an object")

        return normalize_feedback_items(self._validate_item(item) for item in items)

    @staticmethod
    def _validate_item(item: Any) -> FeedbackItem:
        if not isinstance(item, dict):
            raise _invalid("item must be an object")
        if any(key not in ALLOWED_ITEM_KEYS for key in item):
            raise _invalid("unexpected item key")

        message = item.get("message")
        if not isinstance(message, str) or not message.strip():
            raise _invalid("item message must be a non-empty string")

        raw_type = item.get("type")
        raw_severity = item.get("severity")
        raw_tags = item.get("tags")
        raw_score = item.get("scoreHint")

        score_hint: Optional[float] = None
        if isinstance(raw_score, (int, float)) and not isinstance(raw_score, bool):
            score_hint = float(raw_score)
        elif isinstance(raw_score, str) and raw_score.strip():
            try:
                score_hint = float(raw_score)
            except ValueError:
                score_hint = None
            if score_hint is not None and not math.isfinite(score_hint):
                score_hint = None

        return FeedbackItem(
            type=FeedbackType(raw_type) if raw_type in _ALLOWED_TYPES else FeedbackType.OTHER,
            severity=(
                FeedbackSeverity(raw_severity)
                if raw_severity in _ALLOWED_SEVERITIES
                else FeedbackSeverity.WARN
            ),
            message=message,
            suggestion=item.get("suggestion") if isinstance(item.get("suggestion"), str) else None,
            tags=[t for t in raw_tags if isinstance(t, str)] if isinstance(raw_tags, list) else None,
            score_hint=score_hint,
        )
