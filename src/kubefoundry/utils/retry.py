"""Retry with exponential backoff for idempotent Kubernetes reads.

Only GET-style calls go through here. Create and delete calls are never
retried automatically; that policy belongs to the caller.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from kubefoundry.utils.errors import ClusterError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY = 1.0
DEFAULT_MAX_DELAY = 10.0
DEFAULT_BACKOFF_FACTOR = 2.0

RETRYABLE_MESSAGES = ("socket hang up", "network error", "ECONNRESET", "ETIMEDOUT")


def _status_of(error: BaseException) -> int | None:
    if isinstance(error, ApiException):
        return error.status
    if isinstance(error, ClusterError):
        return error.status
    return None


def is_retryable_error(error: BaseException) -> bool:
    """Return True for 5xx, 429 and transient network failures."""
    status = _status_of(error)
    if status is not None and (status >= 500 or status == 429):
        return True

    if isinstance(error, (ConnectionError, TimeoutError, Urllib3HTTPError)):
        return True

    message = str(error)
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


def with_retry(
    fn: Callable[[], T],
    operation_name: str = "operation",
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` and retry transient failures with exponential backoff.

    Args:
        fn: Zero-argument callable performing the read.
        operation_name: Name used in log messages.
        max_retries: Retries after the first attempt.
        initial_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for any single delay.
        backoff_factor: Multiplier applied to the delay after each retry.
        is_retryable: Predicate deciding whether an error is transient.
        sleep: Sleep function, replaceable in tests.

    Returns:
        The value returned by ``fn``.
    """
    delay = initial_delay
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:
            if attempt >= max_retries or not is_retryable(e):
                raise
            attempt += 1
            logger.warning(
                f"Retrying {operation_name} after transient error "
                f"(attempt {attempt}/{max_retries}, status={_status_of(e)}): {e}"
            )
            sleep(delay)
            delay = min(delay * backoff_factor, max_delay)
