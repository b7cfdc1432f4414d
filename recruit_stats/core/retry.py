"""Bounded retry for transient store failures."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import asyncpg
from structlog import get_logger

from recruit_stats.core.config import settings

logger = get_logger()

# Errors worth a second attempt. Anything else (bad SQL, constraint
# violations) fails the same way every time and propagates immediately.
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.InterfaceError,
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.TooManyConnectionsError,
    OSError,
)


async def with_retry[T](
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
    *,
    retries: int | None = None,
    delay_seconds: float | None = None,
) -> T | None:
    """
    Run a store operation, retrying transient failures with a fixed delay.

    Exhausting the retries returns None instead of raising: callers treat that
    as "the operation did not happen". For dirty-tracked writes that is safe
    because the dirty flag stays set and the next scheduler tick retries.

    Args:
        operation: Zero-argument coroutine factory
        operation_name: Name used in log events
        retries: Extra attempts after the first, defaults to settings.db_retry_attempts
        delay_seconds: Fixed delay between attempts, defaults to settings.db_retry_delay_seconds

    Returns:
        The operation's result, or None once retries are exhausted
    """
    max_retries = settings.db_retry_attempts if retries is None else retries
    delay = settings.db_retry_delay_seconds if delay_seconds is None else delay_seconds
    total_attempts = max_retries + 1

    for attempt in range(1, total_attempts + 1):
        try:
            return await operation()
        except TRANSIENT_ERRORS as e:
            logger.warning(
                "store_operation_failed",
                operation=operation_name,
                attempt=attempt,
                max_attempts=total_attempts,
                error=str(e),
            )
            if attempt < total_attempts:
                await asyncio.sleep(delay)

    logger.error("store_operation_retries_exhausted", operation=operation_name)
    return None
