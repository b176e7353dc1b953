"""Retry classification for failed rank checks.

The ranking provider reports failures as text. Provider status codes are
embedded as ``DFS-<code>`` (HTTP status or DataForSEO task status); other
failures (timeouts, connection errors) only carry a message.
"""

import re

MAX_RETRIES = 3

_STATUS_CODE = re.compile(r"\bDFS-(\d{3,5})\b")

# DataForSEO: 40202 = rate limit, 5xxxx = internal errors
_TRANSIENT_CODES = {408, 425, 429, 40202}

_PERMANENT_PATTERNS = re.compile(
    r"(?:quota|insufficient|invalid|not configured|unauthori[sz]ed|forbidden|"
    r"payment required|no target domain)",
    re.IGNORECASE,
)

_TRANSIENT_PATTERNS = re.compile(
    r"(?:timeout|timed out|rate limit|too many requests|connection|network|"
    r"temporarily unavailable|reset by peer|service unavailable|bad gateway)",
    re.IGNORECASE,
)


def _is_transient_code(code: int) -> bool:
    if code in _TRANSIENT_CODES:
        return True
    return 500 <= code < 600 or 50000 <= code < 60000


def is_transient_error(error_message: str | None) -> bool:
    """Classify an error message as transient (worth retrying) or permanent.

    A provider status code decides on its own. Without one, permanent
    signatures win over transient ones, and unknown errors are permanent.
    """
    if not error_message:
        return False

    match = _STATUS_CODE.search(error_message)
    if match:
        return _is_transient_code(int(match.group(1)))

    if _PERMANENT_PATTERNS.search(error_message):
        return False
    return bool(_TRANSIENT_PATTERNS.search(error_message))


def should_retry(retry_count: int, error_message: str | None) -> bool:
    """True when a failed check should go back to pending for another attempt."""
    if retry_count >= MAX_RETRIES:
        return False
    return is_transient_error(error_message)
