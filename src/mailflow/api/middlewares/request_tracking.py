"""In-flight request accounting for the API's graceful drain."""

from asgi_correlation_id import correlation_id
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import RequestResponseEndpoint

from src.mailflow.core.logging import get_logger
from src.mailflow.core.shutdown import request_tracker

logger = get_logger(__name__)

UNTRACKED_PATHS = frozenset({"/health", "/metrics"})
READ_ONLY_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
DRAIN_RETRY_AFTER_SECONDS = 5


async def request_tracking_middleware(
    request: Request, call_next: RequestResponseEndpoint
) -> Response:
    """Count API requests so shutdown can wait for them.

    While draining, writes (which start executions or touch queues) are
    refused with 503 so another replica picks them up; reads still complete.
    """
    if request.url.path in UNTRACKED_PATHS:
        return await call_next(request)

    if request_tracker.is_shutting_down and request.method not in READ_ONLY_METHODS:
        logger.warning("Refusing write while draining", path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Service is shutting down", "request_id": correlation_id.get()},
            headers={"Retry-After": str(DRAIN_RETRY_AFTER_SECONDS)},
        )

    async with request_tracker.track_request():
        return await call_next(request)
