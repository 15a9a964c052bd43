"""Retry policy: which failures are transient and how long to back off."""

from __future__ import annotations

import random

# Status codes worth retrying: rate limiting and upstream server errors.
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Status codes meaning "this model / deployment / api-version is not
# available here"; the adapter moves on to its next combination.
UNAVAILABLE_STATUS_CODES = frozenset({400, 404})


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> float:
    """Calculate exponential backoff with jitter.

    Formula: min(base * 2^attempt + jitter, max_delay)
    Jitter: random(0, base * 0.5)
    """
    exponential = base_delay * (2**attempt)
    jitter = random.uniform(0, base_delay * 0.5)
    return min(exponential + jitter, max_delay)
