from __future__ import annotations

import random
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Callable

from storesync.cloud.errors import CloudApiError


class ErrorCategory(str, Enum):
    TRANSIENT = "TRANSIENT"
    PERMANENT = "PERMANENT"
    STRUCTURAL = "STRUCTURAL"
    UNKNOWN = "UNKNOWN"


TRANSIENT_HTTP_CODES = frozenset({408, 429, 500, 502, 503, 504})
PERMANENT_HTTP_CODES = frozenset({400, 401, 403, 404, 405, 409, 410, 413, 415, 422, 451})


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


STRUCTURAL_PATTERNS = _compile(
    r"missing required field",
    r"validation failed",
    r"invalid payload",
    r"schema validation",
    r"cannot be null",
    r"must be provided",
    r"invalid format",
    r"malformed",
    r"invalid json",
    r"game not found",
    r"game_code missing",
    r"unsupported entity type",
    r"not supported",
)

TRANSIENT_PATTERNS = _compile(
    r"network error",
    r"connection refused",
    r"connection reset",
    r"timed? ?out",
    r"temporarily unavailable",
    r"service unavailable",
    r"try again",
    r"rate limit",
    r"too many requests",
)

PERMANENT_PATTERNS = _compile(
    r"not found",
    r"does not exist",
    r"already exists",
    r"duplicate",
    r"unauthorized",
    r"forbidden",
    r"permission denied",
    r"access denied",
    r"invalid credentials",
    r"bad request",
)

_HTTP_STATUS_RE = re.compile(r"\b(4\d{2}|5\d{2})\b")
_TIMEOUT_RE = re.compile(r"timed? ?out", re.IGNORECASE)


BACKOFF_BASE_SEC = 1.0
BACKOFF_MAX_SEC = 60.0
BACKOFF_JITTER = 0.3
UNKNOWN_BACKOFF_FACTOR = 1.5
EXTENDED_BACKOFF_FACTOR = 2.0
DEFAULT_RETRY_AFTER_SEC = 60.0


@dataclass(slots=True, frozen=True)
class Classification:
    category: ErrorCategory
    extended_backoff: bool = False
    retry_after_sec: float | None = None


def extract_http_status(message: str | None) -> int | None:
    if not message:
        return None
    match = _HTTP_STATUS_RE.search(message)
    if match:
        return int(match.group(1))
    if _TIMEOUT_RE.search(message):
        return 408
    return None


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP date)."""
    if value is None or not value.strip():
        return None
    text = value.strip()
    try:
        return max(0.0, float(text))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


def classify_error(
    http_status: int | None,
    message: str | None,
    retry_after_sec: float | None = None,
) -> Classification:
    text = message or ""
    if any(p.search(text) for p in STRUCTURAL_PATTERNS):
        return Classification(ErrorCategory.STRUCTURAL)
    if http_status:
        if http_status in PERMANENT_HTTP_CODES:
            return Classification(ErrorCategory.PERMANENT)
        if http_status == 429:
            wait = retry_after_sec if retry_after_sec is not None else DEFAULT_RETRY_AFTER_SEC
            return Classification(ErrorCategory.TRANSIENT, extended_backoff=True, retry_after_sec=wait)
        if http_status in TRANSIENT_HTTP_CODES:
            return Classification(
                ErrorCategory.TRANSIENT,
                extended_backoff=http_status == 503,
                retry_after_sec=retry_after_sec if http_status == 503 else None,
            )
    if any(p.search(text) for p in TRANSIENT_PATTERNS):
        return Classification(ErrorCategory.TRANSIENT)
    if any(p.search(text) for p in PERMANENT_PATTERNS):
        return Classification(ErrorCategory.PERMANENT)
    return Classification(ErrorCategory.UNKNOWN, extended_backoff=True)


def classify_exception(exc: BaseException) -> Classification:
    if isinstance(exc, CloudApiError):
        return classify_error(exc.http_status, str(exc), exc.retry_after_sec)
    text = str(exc)
    return classify_error(extract_http_status(text), text)


def backoff_delay_sec(
    attempt: int,
    classification: Classification,
    *,
    base_sec: float = BACKOFF_BASE_SEC,
    max_sec: float = BACKOFF_MAX_SEC,
    jitter: float = BACKOFF_JITTER,
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay before an item that just failed its ``attempt``-th try (0-based) is retried.

    A server-supplied Retry-After wins. Otherwise the delay doubles per
    attempt up to ``max_sec``, stretched for UNKNOWN and rate-limited
    failures, with +/- ``jitter`` spread.
    """
    if classification.retry_after_sec is not None:
        return classification.retry_after_sec
    delay = min(max_sec, base_sec * (2 ** max(0, attempt)))
    if classification.category is ErrorCategory.UNKNOWN:
        delay *= UNKNOWN_BACKOFF_FACTOR
    elif classification.extended_backoff:
        delay *= EXTENDED_BACKOFF_FACTOR
    if jitter:
        delay *= 1 + jitter * (2 * rand() - 1)
    return max(0.0, delay)


_USER_MESSAGES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"ECONNREFUSED|connection refused|connect ?error", re.IGNORECASE), "Unable to connect to cloud service"),
    (re.compile(r"ETIMEDOUT|timed? ?out", re.IGNORECASE), "Connection timed out"),
    (re.compile(r"ENOTFOUND|name or service not known|nodename", re.IGNORECASE), "Cloud service not reachable"),
    (re.compile(r"ENETUNREACH|network is unreachable", re.IGNORECASE), "Network unreachable"),
    (re.compile(r"ECONNRESET|connection reset", re.IGNORECASE), "Connection was reset"),
    (re.compile(r"\b401\b|unauthorized", re.IGNORECASE), "Authentication failed"),
    (re.compile(r"\b403\b|forbidden", re.IGNORECASE), "Access denied"),
    (re.compile(r"\b404\b|not found", re.IGNORECASE), "Resource not found"),
    (re.compile(r"\b429\b|rate limit", re.IGNORECASE), "Too many requests - please wait"),
    (re.compile(r"\b500\b|internal server", re.IGNORECASE), "Cloud service error"),
    (re.compile(r"\b502\b|bad gateway", re.IGNORECASE), "Cloud service temporarily unavailable"),
    (re.compile(r"\b503\b|service unavailable", re.IGNORECASE), "Cloud service is down"),
    (re.compile(r"certificate|ssl", re.IGNORECASE), "Security certificate error"),
)


def sanitize_error_message(message: str | None) -> str:
    text = (message or "").strip()
    if not text:
        return "Sync operation failed"
    for pattern, replacement in _USER_MESSAGES:
        if pattern.search(text):
            return replacement
    if len(text) > 100 or "Traceback" in text or "Error:" in text:
        return "Sync operation failed"
    return text[:50]
