"""
Best-effort ErrorCode extraction for reporting collaborators.

Jobs written by this pipeline store last_error as {"code", "message"}, so the
code is read directly. Older rows (and anything hand-edited by ops) may hold a
plain string instead; for those we only look at concise metadata:
- a short JSON object string → its "code"
- otherwise the first known code token in the first 256 characters

Free-form messages are never parsed beyond that. Nothing in the retry path
calls this; it only serves reads.
"""

import json
from typing import Any, Optional

from models.enums import ErrorCode

MAX_SCAN_CHARS = 256


def _coerce(code: Any) -> Optional[ErrorCode]:
    if not isinstance(code, str) or not code.strip():
        return None
    try:
        return ErrorCode(code.strip())
    except ValueError:
        return ErrorCode.UNKNOWN


def extract_error_code(last_error: Any) -> Optional[ErrorCode]:
    """Return the normalized code for a stored last_error value, or None if there is none."""
    if isinstance(last_error, dict):
        return _coerce(last_error.get("code"))

    if not isinstance(last_error, str):
        return None

    text = last_error.strip()
    if not text:
        return None

    if len(text) <= MAX_SCAN_CHARS and text.startswith("{"):
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            code = _coerce(parsed.get("code"))
            if code is not None:
                return code

    head = text[:MAX_SCAN_CHARS]
    for code in ErrorCode:
        if code.value in head:
            return code
    return None
