"""Retry policy for Qdrant storage calls.

Transient network and server errors are retried with exponential backoff.
Client errors are not retried, and the final failure is re-raised so the
caller sees the original exception.
"""

from __future__ import annotations

import logging

import httpx
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

STORAGE_RETRY_ATTEMPTS = 3


def is_transient_storage_error(exc: BaseException) -> bool:
    """True for errors worth retrying: connection problems, timeouts and 5xx."""
    if isinstance(exc, httpx.ConnectError | httpx.TimeoutException | ResponseHandlingException):
        return True
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code is not None and exc.status_code >= 500
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying storage call %s after attempt %d: %s",
        retry_state.fn.__name__ if retry_state.fn else "unknown",
        retry_state.attempt_number,
        exc,
    )


qdrant_retry = retry(
    stop=stop_after_attempt(STORAGE_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    retry=retry_if_exception(is_transient_storage_error),
    before_sleep=_log_retry,
    reraise=True,
)
