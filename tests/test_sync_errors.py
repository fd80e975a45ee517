from __future__ import annotations

from storesync.cloud.errors import CloudApiError
from datetime import datetime, timezone

from storesync.sync.errors import (
    Classification,
    ErrorCategory,
    backoff_delay_sec,
    classify_error,
    classify_exception,
    extract_http_status,
    parse_retry_after,
    sanitize_error_message,
)


def test_validation_messages_are_structural_regardless_of_status() -> None:
    result = classify_error(503, "Missing required fields: closed_at")
    assert result.category is ErrorCategory.STRUCTURAL
    assert result.extended_backoff is False


def test_http_status_drives_category() -> None:
    assert classify_error(422, "rejected").category is ErrorCategory.PERMANENT
    assert classify_error(502, "bad").category is ErrorCategory.TRANSIENT
    assert classify_error(429, "slow down").extended_backoff is True
    assert classify_error(500, "boom").extended_backoff is False


def test_message_patterns_apply_without_status() -> None:
    assert classify_error(None, "network error: connection reset").category is ErrorCategory.TRANSIENT
    assert classify_error(None, "pack already exists").category is ErrorCategory.PERMANENT


def test_unrecognised_errors_are_unknown_with_backoff() -> None:
    result = classify_error(None, "something odd")
    assert result.category is ErrorCategory.UNKNOWN
    assert result.extended_backoff is True


def test_classify_exception_uses_cloud_error_status() -> None:
    exc = CloudApiError("POST /x failed", http_status=401)
    assert classify_exception(exc).category is ErrorCategory.PERMANENT
    assert classify_exception(RuntimeError("request timed out")).category is ErrorCategory.TRANSIENT


def test_extract_http_status() -> None:
    assert extract_http_status("POST /x failed (HTTP 503)") == 503
    assert extract_http_status("read timed out") == 408
    assert extract_http_status("plain failure") is None
    assert extract_http_status(None) is None


def test_sanitize_maps_known_failures() -> None:
    assert sanitize_error_message("connect error: connection refused") == "Unable to connect to cloud service"
    assert sanitize_error_message("POST /x failed (HTTP 401)") == "Authentication failed"
    assert sanitize_error_message("POST /x failed (HTTP 503)") == "Cloud service is down"


def test_sanitize_hides_internals() -> None:
    assert sanitize_error_message("Traceback (most recent call last): ...") == "Sync operation failed"
    assert sanitize_error_message("x" * 200) == "Sync operation failed"
    assert sanitize_error_message("") == "Sync operation failed"
    assert sanitize_error_message("1 item(s) failed, will retry automatically") == (
        "1 item(s) failed, will retry automatically"
    )


def test_rate_limit_honours_retry_after() -> None:
    assert classify_error(429, "slow down", 12.0).retry_after_sec == 12.0
    assert classify_error(429, "slow down").retry_after_sec == 60.0
    assert classify_error(502, "bad", 12.0).retry_after_sec is None
    assert classify_exception(CloudApiError("POST /x failed", http_status=429, retry_after_sec=5)).retry_after_sec == 5


def test_parse_retry_after_accepts_seconds_and_http_dates() -> None:
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert parse_retry_after("30") == 30.0
    assert parse_retry_after("Sun, 01 Mar 2026 12:00:45 GMT", now) == 45.0
    assert parse_retry_after("Sun, 01 Mar 2026 11:00:00 GMT", now) == 0.0
    assert parse_retry_after("soon") is None
    assert parse_retry_after(None) is None


def test_backoff_grows_exponentially_and_is_capped() -> None:
    transient = Classification(ErrorCategory.TRANSIENT)
    assert [backoff_delay_sec(n, transient, jitter=0) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]
    assert backoff_delay_sec(10, transient, jitter=0) == 60.0
    assert backoff_delay_sec(1, Classification(ErrorCategory.UNKNOWN, extended_backoff=True), jitter=0) == 3.0
    assert backoff_delay_sec(1, classify_error(503, "down"), jitter=0) == 4.0
    assert backoff_delay_sec(3, classify_error(429, "slow", 7.0)) == 7.0


def test_backoff_jitter_stays_within_spread() -> None:
    transient = Classification(ErrorCategory.TRANSIENT)
    assert backoff_delay_sec(2, transient, rand=lambda: 0.0) == 4.0 * 0.7
    assert backoff_delay_sec(2, transient, rand=lambda: 1.0) == 4.0 * 1.3
