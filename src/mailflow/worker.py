"""
Queue worker - separate process from the API.

Run with:
    uv run python -m src.mailflow.worker                             # All queues
    uv run python -m src.mailflow.worker --queues automation email   # Selected queues
    uv run python -m src.mailflow.worker --migrate                   # Upgrade the schema first
"""

import argparse
import asyncio
import signal

import uvicorn
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.mailflow.core.config import Settings, get_settings
from src.mailflow.core.db import create_session_factory, dispose_engine, run_migrations_async
from src.mailflow.core.logging import get_logger, setup_logging
from src.mailflow.core.notifications.email import get_email_transport
from src.mailflow.core.redis import close_redis, get_redis
from src.mailflow.jobs import build_workers
from src.mailflow.queue import QueueName, QueueService, Worker
from src.mailflow.repositories import UsageRepository
from src.mailflow.services.rate_limit_service import RateLimitService

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for queue selection."""
    parser = argparse.ArgumentParser(description="Mailflow queue worker")
    parser.add_argument(
        "--queues",
        nargs="+",
        choices=[name.value for name in QueueName],
        default=[name.value for name in QueueName],
        help="Queues to process (default: all)",
    )
    parser.add_argument(
        "--migrate",
        action="store_true",
        help="Run database migrations before starting workers",
    )
    return parser.parse_args(argv)


def create_health_app(queues: list[str], workers: list[Worker]) -> FastAPI:
    """Lightweight health app for K8s probes."""
    health_app = FastAPI(title="Mailflow Worker Health")

    @health_app.get("/health")
    async def health() -> dict[str, str | list[str] | dict[str, int]]:
        return {
            "status": "healthy",
            "service": "mailflow-worker",
            "queues": queues,
            "in_flight": {worker.queue.name: worker.in_flight for worker in workers},
        }

    @health_app.get("/ready")
    async def ready() -> dict[str, str]:
        return {"status": "ready"}

    return health_app


async def run_health_server(app: FastAPI, port: int) -> None:
    config = uvicorn.Config(app, host="0.0.0.0", port=port, log_level="warning")
    server = uvicorn.Server(config)
    logger.info(f"Starting health server on port {port}")
    await server.serve()


async def cleanup_usage(session_factory: async_sessionmaker[AsyncSession], settings: Settings) -> int:
    """Delete usage rows past the retention period."""
    async with session_factory() as session:
        deleted = await RateLimitService(UsageRepository(session), settings).cleanup_usage()
        await session.commit()
    return deleted


async def run_usage_cleanup(
    session_factory: async_sessionmaker[AsyncSession], settings: Settings, stop: asyncio.Event
) -> None:
    """Sweep the usage log every ``usage_cleanup_interval_seconds`` until stopped."""
    interval = settings.usage_cleanup_interval_seconds
    while not stop.is_set():
        try:
            await cleanup_usage(session_factory, settings)
        except Exception:
            logger.exception("Usage cleanup failed")
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except TimeoutError:
            pass


async def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(settings.debug)

    if args.migrate:
        logger.info("Running database migrations")
        await run_migrations_async()

    queue_names = [QueueName(name) for name in args.queues]
    session_factory = create_session_factory()
    queue_service = QueueService(await get_redis(), settings)
    workers = build_workers(
        queue_service,
        session_factory,
        get_email_transport(settings),
        queue_names,
        settings,
    )
    logger.info("Starting workers", queues=args.queues)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    health_task = asyncio.create_task(
        run_health_server(create_health_app(args.queues, workers), settings.worker_health_port)
    )
    worker_tasks = [asyncio.create_task(worker.run()) for worker in workers]
    if settings.usage_cleanup_interval_seconds > 0:
        worker_tasks.append(asyncio.create_task(run_usage_cleanup(session_factory, settings, stop)))
    try:
        await stop.wait()
        logger.info("Shutdown signal received, draining workers")
        results = await asyncio.gather(
            *(worker.stop(timeout=settings.shutdown_grace_period) for worker in workers)
        )
        if not all(results):
            logger.warning("Some jobs did not finish; their leases will expire")
        await asyncio.gather(*worker_tasks, return_exceptions=True)
    finally:
        health_task.cancel()
        await queue_service.close()
        await close_redis()
        await dispose_engine()
        logger.info("Worker shutdown complete")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
