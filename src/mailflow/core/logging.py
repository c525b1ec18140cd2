"""Logging configuration using structlog."""

import logging
import sys
from uuid import UUID

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars


def setup_logging(debug: bool = False) -> None:
    """Configure structlog for structured logging.

    Args:
        debug: If True, use colored console output. If False, use JSON for production.
    """
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    shared_processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        processors = shared_processors + [structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Set library log levels to reduce noise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance.

    Args:
        name: Optional logger name.

    Returns:
        A bound structlog logger.
    """
    return structlog.get_logger(name)


def bind_request_context(request_id: str | None) -> None:
    """Bind request-level context to all subsequent log calls.

    Args:
        request_id: The correlation ID for the current request.
    """
    if request_id:
        bind_contextvars(request_id=request_id)


def bind_job_context(queue_name: str, job_id: str, attempt: int) -> None:
    """Bind job-level context for the duration of a job invocation.

    Each job runs in its own asyncio task, so the binding does not leak
    between concurrently processed jobs.

    Args:
        queue_name: Queue the job was claimed from.
        job_id: The job's id (deterministic for automation steps).
        attempt: 1-based attempt number.
    """
    bind_contextvars(queue=queue_name, job_id=job_id, attempt=attempt)


def bind_execution_context(
    execution_id: UUID, tenant_id: UUID, automation_id: UUID | None = None
) -> None:
    """Bind workflow execution context to all subsequent log calls.

    Args:
        execution_id: The execution being advanced.
        tenant_id: Owning tenant.
        automation_id: Optional automation the execution belongs to.
    """
    bind_contextvars(
        execution_id=str(execution_id),
        tenant_id=str(tenant_id),
    )
    if automation_id is not None:
        bind_contextvars(automation_id=str(automation_id))


def clear_request_context() -> None:
    """Clear all request- or job-scoped context."""
    clear_contextvars()
