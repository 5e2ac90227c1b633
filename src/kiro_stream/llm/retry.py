"""Retry decisions and exponential backoff for upstream requests."""

from __future__ import annotations

from kiro_stream.types import RetryDecision, RetryStrategy

BACKOFF_BASE_MS = 1000
AUTH_RACE_BASE_MS = 500
BACKOFF_MAX_MS = 30_000

# 400 bodies that mean "request too big" rather than a real client error
TOO_BIG_PATTERNS = (
    "CONTENT_LENGTH_EXCEEDS_THRESHOLD",
    "Input is too long",
    "Improperly formed",
)

_NO_RETRY = RetryDecision(should_retry=False, delay_ms=0, strategy=RetryStrategy.NONE)


def exponential_backoff(attempt: int, base_ms: int, max_ms: int) -> int:
    """``min(base_ms * 2**attempt, max_ms)``."""
    return min(base_ms * (2 ** attempt), max_ms)


def _backoff(attempt: int, base_ms: int) -> RetryDecision:
    return RetryDecision(
        should_retry=True,
        delay_ms=exponential_backoff(attempt, base_ms, BACKOFF_MAX_MS),
        strategy=RetryStrategy.BACKOFF,
    )


def decide_retry(
    status: int,
    error_text: str,
    attempt: int,
    max_attempts: int,
) -> RetryDecision:
    """Pick a retry strategy for a failed HTTP response.

    413 (or 400 with a size complaint) shrinks the request; 429, 5xx and
    403 back off; anything else is fatal.  Nothing retries once *attempt*
    reaches *max_attempts*.
    """
    if attempt >= max_attempts:
        return _NO_RETRY

    if status == 413 or (
        status == 400 and any(p in error_text for p in TOO_BIG_PATTERNS)
    ):
        return RetryDecision(should_retry=True, delay_ms=0, strategy=RetryStrategy.REDUCE)

    if status == 429 or 500 <= status < 600:
        return _backoff(attempt, BACKOFF_BASE_MS)

    # Transient authorization race right after a token refresh
    if status == 403:
        return _backoff(attempt, AUTH_RACE_BASE_MS)

    return _NO_RETRY


def decide_timeout_retry(attempt: int, max_attempts: int) -> RetryDecision:
    """Retry decision for a first-chunk or idle timeout."""
    if attempt >= max_attempts:
        return _NO_RETRY
    return _backoff(attempt, BACKOFF_BASE_MS)
