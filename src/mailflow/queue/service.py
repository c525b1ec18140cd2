"""QueueService: the four queues of one process."""

from collections.abc import Callable

from redis.asyncio import Redis

from src.mailflow.core.config import Settings, get_settings
from src.mailflow.core.exceptions import NotFoundError
from src.mailflow.core.logging import get_logger
from src.mailflow.models.base import utc_now
from src.mailflow.queue.definitions import JobName, QueueName, queue_definitions
from src.mailflow.queue.job import Job
from src.mailflow.queue.redis_queue import JobQueue
from src.mailflow.schemas.jobs import (
    AnalyticsJobData,
    AutomationJobData,
    CampaignJobData,
    EmailJobData,
)

logger = get_logger(__name__)


def automation_job_id(data: AutomationJobData) -> str:
    """Deterministic id of an automation step job: ``{execution_id}:{step}``."""
    return f"{data.execution_id}:{data.step}"


class QueueService:
    """Owns the email, campaign, automation and analytics queues.

    Created once per process (API lifespan or worker entrypoint) and passed
    explicitly to whatever needs to enqueue.
    """

    def __init__(
        self,
        redis: Redis,
        settings: Settings | None = None,
        *,
        clock: Callable[[], float] | None = None,
        owns_connection: bool = False,
    ):
        self.redis = redis
        self.settings = settings or get_settings()
        self._owns_connection = owns_connection
        self.definitions = queue_definitions(self.settings)
        self.queues: dict[QueueName, JobQueue] = {
            name: JobQueue(
                redis,
                definition,
                prefix=self.settings.queue_prefix,
                lease_ms=self.settings.queue_lease_seconds * 1000,
                clock=clock,
            )
            for name, definition in self.definitions.items()
        }

    def get_queue(self, name: QueueName | str) -> JobQueue:
        try:
            return self.queues[QueueName(name)]
        except ValueError:
            raise NotFoundError(f"Unknown queue: {name}") from None

    async def add_email_job(
        self,
        data: EmailJobData,
        delay: int | None = None,
        priority: int | None = None,
        attempts: int | None = None,
        job_id: str | None = None,
    ) -> Job:
        """Enqueue one email send.

        Without an explicit ``delay``, a ``send_at`` in the future delays the
        job until then.
        """
        queue = self.queues[QueueName.EMAIL]
        if delay is None:
            delay = 0
            if data.send_at is not None:
                delay = max(0, int((data.send_at - utc_now()).total_seconds() * 1000))
        options = queue.default_options(
            delay=delay,
            priority=priority if priority is not None else data.priority,
            attempts=attempts if attempts is not None else 3,
            job_id=job_id,
        )
        return await queue.add(JobName.SEND_EMAIL.value, data.model_dump(mode="json"), options)

    async def add_campaign_job(self, data: CampaignJobData) -> Job:
        queue = self.queues[QueueName.CAMPAIGN]
        return await queue.add(JobName.SEND_CAMPAIGN.value, data.model_dump(mode="json"))

    async def add_automation_job(
        self, data: AutomationJobData, delay: int = 0, job_id: str | None = None
    ) -> Job:
        """Enqueue one automation step.

        The job id defaults to ``{execution_id}:{step}`` so a step is never
        queued twice.
        """
        queue = self.queues[QueueName.AUTOMATION]
        options = queue.default_options(delay=delay, job_id=job_id or automation_job_id(data))
        return await queue.add(
            JobName.PROCESS_AUTOMATION.value, data.model_dump(mode="json"), options
        )

    async def add_analytics_job(self, data: AnalyticsJobData) -> Job:
        queue = self.queues[QueueName.ANALYTICS]
        return await queue.add(JobName.TRACK_EVENT.value, data.model_dump(mode="json"))

    async def get_queue_stats(self) -> dict[str, dict[str, int | bool]]:
        stats: dict[str, dict[str, int | bool]] = {}
        for name, queue in self.queues.items():
            counts: dict[str, int | bool] = dict(await queue.get_job_counts())
            counts["paused"] = await queue.is_paused()
            stats[name.value] = counts
        return stats

    async def pause_queue(self, name: QueueName | str) -> None:
        await self.get_queue(name).pause()

    async def resume_queue(self, name: QueueName | str) -> None:
        await self.get_queue(name).resume()

    async def close(self) -> None:
        if self._owns_connection:
            await self.redis.aclose()
        logger.info("Queue service closed")
