from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from waitlist.domain.entities import ErrorKind, OperationResult

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
MSG_UNEXPECTED = "Network error. Please check your connection and try again."


async def with_retry(
    operation: Callable[[], Awaitable[OperationResult[T]]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> OperationResult[T]:
    """
    Run `operation` until it succeeds, fails for a non-retryable reason, or
    runs out of attempts.

    After a retryable failure on attempt n (counted from 1) it waits 2**n
    seconds: 2s, then 4s, then 8s ... The last failure is returned as-is.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    result: OperationResult[T] | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            result = await operation()
        except Exception as exc:
            log.warning("Attempt %d/%d raised %r", attempt, max_attempts, exc, exc_info=True)
            result = OperationResult.failure(ErrorKind.NETWORK_ERROR, MSG_UNEXPECTED)

        if result.ok:
            return result

        if not result.error_kind.retryable:
            log.info("Not retrying %s: %s", result.error_kind.value, result.error_message)
            return result

        if attempt < max_attempts:
            wait = 2 ** attempt
            log.warning("Attempt %d/%d failed (%s) - retrying in %ds", attempt, max_attempts, result.error_kind.value, wait)
            await sleep(wait)

    log.error("Giving up after %d attempts: %s", max_attempts, result.error_message)
    return result
