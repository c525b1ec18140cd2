import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text

from src.mailflow.api.dependencies import require_admin_key
from src.mailflow.api.middlewares import setup_middlewares
from src.mailflow.api.v1.router import api_router
from src.mailflow.core.config import get_settings
from src.mailflow.core.db import create_session_factory, dispose_engine
from src.mailflow.core.exceptions import setup_exception_handlers
from src.mailflow.core.logging import get_logger, setup_logging
from src.mailflow.core.redis import close_redis, get_redis
from src.mailflow.core.shutdown import request_tracker
from src.mailflow.queue.service import QueueService
from src.mailflow.workflow.graph import GraphCache

logger = get_logger(__name__)

# Health check caching
_health_cache: dict[str, Any] | None = None
_health_cache_time: float = 0
HEALTH_CACHE_TTL = 10  # seconds


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan - startup and shutdown."""
    settings = get_settings()
    setup_logging(settings.debug)
    logger.info(f"Starting {settings.app_name}")

    redis = await get_redis()
    app.state.queue_service = QueueService(redis, settings)
    app.state.session_factory = create_session_factory()
    app.state.graph_cache = GraphCache()

    yield

    grace_period = settings.shutdown_grace_period
    await request_tracker.start_shutdown()
    if not await request_tracker.wait_for_drain(timeout=grace_period):
        logger.warning(
            f"Shutdown timeout after {grace_period}s - "
            f"{request_tracker.in_flight_count} requests may not have completed"
        )

    logger.info("Closing connections...")
    await app.state.queue_service.close()
    await close_redis()
    await dispose_engine()
    logger.info("Shutdown complete")


OPENAPI_TAGS = [
    {"name": "automations", "description": "Start automation executions"},
    {"name": "executions", "description": "Execution state, timeline and control"},
    {"name": "queues", "description": "Job queue statistics and control"},
    {"name": "usage", "description": "API usage and rate limit statistics"},
]


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Marketing automation workflow engine",
        version="0.1.0",
        openapi_tags=OPENAPI_TAGS,
        openapi_url="/openapi.json" if settings.enable_openapi else None,
        lifespan=lifespan,
    )

    setup_exception_handlers(app)
    setup_middlewares(app)

    app.include_router(api_router)

    # Prometheus metrics, guarded by the admin key when one is configured
    Instrumentator().instrument(app).expose(
        app, endpoint="/metrics", dependencies=[Depends(require_admin_key)]
    )

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """Health check with dependency validation and caching."""
        global _health_cache, _health_cache_time

        now = time.time()

        if request_tracker.is_shutting_down:
            return JSONResponse(
                content={
                    "status": "draining",
                    "in_flight_requests": request_tracker.in_flight_count,
                },
                status_code=503,
            )

        if _health_cache and (now - _health_cache_time) < HEALTH_CACHE_TTL:
            cached_response = _health_cache.copy()
            cached_response["cached"] = True
            status_code = 200 if cached_response["status"] == "healthy" else 503
            return JSONResponse(content=cached_response, status_code=status_code)

        health_status: dict[str, Any] = {
            "status": "healthy",
            "database": "unknown",
            "redis": "unknown",
            "cached": False,
            "timestamp": now,
        }

        try:
            async with request.app.state.session_factory() as session:
                await session.execute(text("SELECT 1"))
            health_status["database"] = "healthy"
        except Exception as e:
            health_status["database"] = f"unhealthy: {str(e)}"
            health_status["status"] = "unhealthy"

        # Queues live in Redis, so Redis being down is unhealthy
        try:
            await request.app.state.queue_service.redis.ping()
            health_status["redis"] = "healthy"
        except Exception as e:
            health_status["redis"] = f"unhealthy: {str(e)}"
            health_status["status"] = "unhealthy"

        _health_cache = health_status
        _health_cache_time = now

        status_code = 200 if health_status["status"] == "healthy" else 503
        return JSONResponse(content=health_status, status_code=status_code)

    return app


def reset_health_cache() -> None:
    """Reset the health check cache. For testing only."""
    global _health_cache, _health_cache_time
    _health_cache = None
    _health_cache_time = 0


app = create_app()
