"""Domain error taxonomy and HTTP exception handlers.

Errors carry a ``retryable`` flag that the queue worker consults: retryable
errors go through the job's attempts/backoff policy, everything else fails the
job on the spot.
"""

from asgi_correlation_id import correlation_id
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.mailflow.core.logging import get_logger

logger = get_logger(__name__)


class MailflowError(Exception):
    """Base class for domain errors."""

    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MailflowError):
    """Invalid or missing node config, unknown node or action type."""


class NotFoundError(MailflowError):
    """Execution, automation, subscriber, list or campaign missing."""


class TransientError(MailflowError):
    """Temporary failure (transport timeout, storage contention)."""

    retryable = True


class RateLimitExceededError(TransientError):
    """An admission check denied a send-type side effect."""

    def __init__(self, message: str, retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after


def is_retryable(exc: BaseException) -> bool:
    """Unexpected exceptions are treated as infrastructure failures and retried."""
    if isinstance(exc, MailflowError):
        return exc.retryable
    return True


def _error_response(status_code: int, detail: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "request_id": correlation_id.get()},
        headers=headers,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure exception handlers that include request_id in responses."""

    @app.exception_handler(StarletteHTTPException)
    async def starlette_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _error_response(exc.status_code, str(exc.detail), exc.headers)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return _error_response(exc.status_code, str(exc.detail), exc.headers)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error_response(404, exc.message)

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _error_response(422, exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
        retry_after = exc.retry_after or 1
        return _error_response(429, exc.message, {"Retry-After": str(retry_after)})

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled exception",
            exc_info=exc,
            request_id=correlation_id.get(),
            path=request.url.path,
        )
        return _error_response(500, "Internal server error")
