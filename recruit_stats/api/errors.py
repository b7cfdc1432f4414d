"""FastAPI exception handlers for domain errors."""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from structlog import get_logger

from recruit_stats.core.config import settings
from recruit_stats.core.errors import DomainError

logger = get_logger()

# Map domain error codes to HTTP status codes
ERROR_STATUS_MAP = {
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "VALIDATION_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "AGGREGATION_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "DATABASE_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "CONFIGURATION_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "DOMAIN_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """
    Translate domain exceptions to HTTP responses.

    Domain errors are expected/handled errors, so log at WARNING level.
    Includes error context in response if expose_error_details is enabled.
    """
    http_status = ERROR_STATUS_MAP.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.warning(
        "domain_error_handled",
        error_code=exc.code,
        http_status=http_status,
        message=exc.message,
        context=exc.context,
        request_id=_request_id(request),
    )

    content: dict[str, Any] = {
        "error": {
            "code": exc.code,
            "message": exc.message,
            "request_id": _request_id(request),
        }
    }

    # Development/staging only
    if settings.expose_error_details and exc.context:
        content["error"]["details"] = exc.context

    return JSONResponse(status_code=http_status, content=content)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTPException in the standard error envelope, code HTTP_<status>."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": f"HTTP_{exc.status_code}",
                "message": str(exc.detail),
                "request_id": _request_id(request),
            }
        },
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request validation failures, with pydantic's error list as details."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request data",
                "details": jsonable_errors(exc),
                "request_id": _request_id(request),
            }
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """pydantic error dicts minus the non-serializable ctx/url entries."""
    errors: list[dict[str, Any]] = jsonable_encoder(
        [
            {key: value for key, value in error.items() if key not in ("ctx", "url")}
            for error in exc.errors()
        ]
    )
    return errors


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all for unexpected exceptions.

    Logs the full stack trace at ERROR level and returns a generic 500.
    """
    logger.exception(
        "unhandled_exception",
        error_type=type(exc).__name__,
        request_id=_request_id(request),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "request_id": _request_id(request),
            }
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register handlers for DomainError, HTTPException, RequestValidationError
    and the Exception catch-all.
    """
    app.add_exception_handler(DomainError, domain_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, general_exception_handler)
