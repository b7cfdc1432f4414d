"""Errors raised by the stats services and translated by the API layer."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

import asyncpg
from structlog import get_logger

logger = get_logger()


class DomainError(Exception):
    """Base error. `code` becomes error.code in the HTTP envelope."""

    code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return self.message


class NotFoundError(DomainError):
    """No stats row or event matches the request."""

    code = "NOT_FOUND"


class ValidationError(DomainError):
    """Bad query input: an inverted date range, or a non-positive day count."""

    code = "VALIDATION_ERROR"


class DatabaseError(DomainError):
    """The event or stats store failed, or an event could not be stored after retries."""

    code = "DATABASE_ERROR"


class ConfigurationError(DomainError):
    """A service was never wired onto app.state."""

    code = "CONFIGURATION_ERROR"


class AggregationError(DomainError):
    """A single dimension-day could not be recomputed; its dirty flag stays set."""

    code = "AGGREGATION_ERROR"


def service_boundary[**P, T](
    func: Callable[P, Awaitable[T]],
) -> Callable[P, Awaitable[T]]:
    """
    Wrap a query-service method so store failures surface as DatabaseError.

    DomainErrors pass through untouched. Anything else becomes a bare
    DomainError, which the API layer renders as a 500.
    """

    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await func(*args, **kwargs)
        except DomainError:
            raise
        except asyncpg.PostgresError as e:
            logger.error("database_error", function=func.__name__, error=str(e))
            raise DatabaseError(str(e), context={"function": func.__name__}) from e
        except Exception as e:
            logger.exception("unexpected_error", function=func.__name__)
            raise DomainError(
                str(e), context={"function": func.__name__, "type": type(e).__name__}
            ) from e

    return wrapper
