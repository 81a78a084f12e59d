"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.exceptions import (
    AuthError,
    InvalidRequestError,
    NotFoundError,
    InvalidCodeError,
    InvalidTokenError,
    SessionExpiredError,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitedError,
    DependencyError,
)
from clients.postgres_client import DatabaseError

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
_AUTH_ERROR_MAP: list[tuple[type[AuthError], int, str]] = [
    (InvalidRequestError, 400, ErrorCodes.INVALID_REQUEST),
    (NotFoundError, 404, ErrorCodes.NOT_FOUND),
    (InvalidCodeError, 401, ErrorCodes.INVALID_CODE),
    (SessionExpiredError, 401, ErrorCodes.SESSION_EXPIRED),
    (InvalidTokenError, 401, ErrorCodes.INVALID_TOKEN),
    (AuthenticationError, 401, ErrorCodes.NOT_AUTHENTICATED),
    (PermissionDeniedError, 403, ErrorCodes.PERMISSION_DENIED),
]


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _json_error(request: Request, status_code: int, code: str, message: str, headers=None):
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=error_response(code, message, _request_id(request)).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(RateLimitedError)
    async def rate_limited_handler(request: Request, exc: RateLimitedError):
        return _json_error(
            request,
            429,
            ErrorCodes.RATE_LIMITED,
            f"Too many requests. Please wait {exc.retry_after_seconds} seconds.",
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    @app.exception_handler(DependencyError)
    async def dependency_error_handler(request: Request, exc: DependencyError):
        logger.error(
            f"Dependency failure on {request.method} {request.url.path}: {exc}",
            exc_info=exc,
        )
        return _json_error(
            request, 500, ErrorCodes.SERVICE_UNAVAILABLE, "Service temporarily unavailable"
        )

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        for exc_type, status_code, code in _AUTH_ERROR_MAP:
            if isinstance(exc, exc_type):
                return _json_error(request, status_code, code, str(exc))
        logger.error(f"Unmapped auth error: {exc!r}")
        return _json_error(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _json_error(request, 400, ErrorCodes.INVALID_REQUEST, "Request body is invalid")

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request: Request, exc: DatabaseError):
        logger.error(
            f"Database failure on {request.method} {request.url.path}: {exc}",
            exc_info=exc,
        )
        return _json_error(
            request, 500, ErrorCodes.SERVICE_UNAVAILABLE, "Service temporarily unavailable"
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _json_error(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
