"""
HTTP helper with a bounded retry policy.

Used by the data provider and the advisory oracle.  Transient failures
(network errors, timeouts, 5xx, 408, 429) are retried with exponential
backoff; any other 4xx fails on the first response.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import requests

from ..core.config import DEFAULT_CONFIG, RetryConfig

logger = logging.getLogger(__name__)

RETRYABLE_CLIENT_STATUSES = (408, 429)


class ProviderError(Exception):
    """Raised when an external HTTP call fails after the retry budget."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def is_retryable(status_code: int) -> bool:
    """5xx, 408 and 429 are worth another attempt."""
    return status_code >= 500 or status_code in RETRYABLE_CLIENT_STATUSES


def request_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    *,
    retry: RetryConfig = DEFAULT_CONFIG.retry,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> requests.Response:
    """
    Issue a request, retrying transient failures.

    Args:
        session: requests.Session (or anything with a compatible ``request``)
        method: HTTP method
        url: Absolute URL
        retry: Attempts, base delay (doubled per attempt) and timeout
        sleep: Delay function, injectable for tests
        **kwargs: Passed through to ``session.request``

    Returns:
        The successful response

    Raises:
        ProviderError: non-retryable status, or retries exhausted
    """
    kwargs.setdefault("timeout", retry.timeout)
    last_error: str = "no attempt made"
    last_status: int | None = None

    for attempt in range(retry.attempts):
        try:
            response = session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            last_error, last_status = f"{type(e).__name__}: {e}", None
        else:
            if response.status_code < 400:
                return response
            last_error = f"HTTP {response.status_code} from {url}"
            last_status = response.status_code
            if not is_retryable(response.status_code):
                raise ProviderError(last_error, status_code=last_status)

        if attempt < retry.attempts - 1:
            delay = retry.base_delay * (2 ** attempt)
            logger.debug(
                "%s %s failed (%s); retry %d/%d in %.1fs",
                method, url, last_error, attempt + 1, retry.attempts - 1, delay,
            )
            sleep(delay)

    logger.warning("%s %s failed after %d attempts: %s", method, url, retry.attempts, last_error)
    raise ProviderError(last_error, status_code=last_status)
