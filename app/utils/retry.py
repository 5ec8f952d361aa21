"""
Backoff helpers for notification delivery.

Platform adapter calls are never retried here; a failed fetch is reported
once and picked up again by the next scheduled sync.
"""
import asyncio
import random
from typing import Tuple, Type

import aiohttp
import httpx


# Default retryable exceptions (network/API errors)
DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    aiohttp.ClientConnectionError,
    httpx.TransportError,
)


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True
) -> float:
    """
    Calculate delay for exponential backoff.

    Args:
        attempt: Current attempt number (1-indexed)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap
        exponential_base: Base for exponential calculation
        jitter: Add up to 25% randomness to the delay

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)

    if jitter:
        delay += delay * random.uniform(0, 0.25)

    return delay


def is_retryable_error(
    error: Exception,
    retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
    retryable_status_codes: Tuple[int, ...] = (429, 500, 502, 503, 504)
) -> bool:
    """
    Check if a delivery error is worth another attempt.

    Args:
        error: The exception to check
        retryable_exceptions: Exception types that are always transient
        retryable_status_codes: HTTP status codes that are transient

    Returns:
        True if error should be retried
    """
    if isinstance(error, retryable_exceptions):
        return True

    status = getattr(error, "status", None)
    if status is None and isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
    if status in retryable_status_codes:
        return True

    error_str = str(error).lower()

    if "rate limit" in error_str or "too many requests" in error_str:
        return True

    if "timeout" in error_str or "timed out" in error_str:
        return True

    return "connection" in error_str and any(
        word in error_str for word in ("refused", "reset", "failed")
    )
