"""Shared plumbing for job handlers."""

import pydantic
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.mailflow.core.config import Settings, get_settings
from src.mailflow.core.exceptions import ValidationError
from src.mailflow.queue.job import Job
from src.mailflow.queue.service import QueueService


def parse_payload[PayloadT: pydantic.BaseModel](model: type[PayloadT], job: Job) -> PayloadT:
    """Validate a job payload. A malformed payload never succeeds on retry."""
    try:
        return model.model_validate(job.data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid {job.name} payload: {e.error_count()} error(s)") from e


class JobHandler:
    """Base for queue processors: one session per job invocation."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue_service: QueueService,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.queue_service = queue_service
        self.settings = settings or get_settings()

    async def progress(self, job: Job, value: int) -> None:
        await self.queue_service.get_queue(job.queue_name).update_progress(job, value)
