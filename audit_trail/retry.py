"""
Retry with Linear Backoff
=========================
Retry helper for audit writes that must not be lost.
"""

import asyncio
from typing import Awaitable, Callable

import structlog

from .exceptions import RetryExhausted

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def retry_with_backoff(
    attempt_func: Callable[[int], Awaitable[bool]],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    sleep: Sleep = asyncio.sleep,
    name: str = "audit_retry",
) -> int:
    """
    Run attempt_func until it reports success.

    Attempt n waits base_delay * n before running. attempt_func receives the
    attempt number and returns True on success; returning False or raising
    counts as a failed attempt.

    Args:
        attempt_func: Async callable taking the attempt number
        max_attempts: Maximum number of attempts
        base_delay: Delay unit in seconds
        sleep: Coroutine function used to wait
        name: Label for log lines

    Returns:
        The attempt number that succeeded

    Raises:
        RetryExhausted: If every attempt fails
    """
    last_exception = None

    for attempt in range(1, max_attempts + 1):
        delay = base_delay * attempt
        logger.info("retrying_audit", name=name, attempt=attempt, max_attempts=max_attempts, delay=delay)
        await sleep(delay)

        try:
            if await attempt_func(attempt):
                logger.info("audit_retry_succeeded", name=name, attempt=attempt)
                return attempt
            logger.error("audit_retry_failed", name=name, attempt=attempt)
        except Exception as e:
            last_exception = e
            logger.error("audit_retry_failed", name=name, attempt=attempt, error=str(e), exc_info=True)

    raise RetryExhausted(
        f"{name} failed after {max_attempts} attempts",
        attempts=max_attempts,
        last_exception=last_exception,
    )
