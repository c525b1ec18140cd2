"""Automation queue processor: one workflow step per job."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.mailflow.core.config import Settings
from src.mailflow.core.exceptions import MailflowError
from src.mailflow.core.logging import get_logger
from src.mailflow.jobs.base import JobHandler, parse_payload
from src.mailflow.queue.job import Continuation, Job
from src.mailflow.queue.service import QueueService
from src.mailflow.schemas.jobs import AutomationJobData
from src.mailflow.workflow.engine import WorkflowEngine
from src.mailflow.workflow.graph import GraphCache

logger = get_logger(__name__)


def failure_message(exc: BaseException) -> str:
    message = exc.message if isinstance(exc, MailflowError) else str(exc)
    return f"{type(exc).__name__}: {message}"


class AutomationJobHandler(JobHandler):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue_service: QueueService,
        graph_cache: GraphCache | None = None,
        settings: Settings | None = None,
    ):
        super().__init__(session_factory, queue_service, settings)
        self.graph_cache = graph_cache or GraphCache()

    def _engine(self, session: AsyncSession) -> WorkflowEngine:
        return WorkflowEngine(session, self.queue_service, self.graph_cache, self.settings)

    async def __call__(self, job: Job) -> Continuation | None:
        data = parse_payload(AutomationJobData, job)
        async with self.session_factory() as session:
            continuation = await self._engine(session).process_job(data)
        await self.progress(job, 100)
        return continuation

    async def on_failed(self, job: Job, exc: BaseException) -> None:
        """Final failure (retries exhausted or non-retryable): mark the execution FAILED."""
        try:
            data = AutomationJobData.model_validate(job.data)
        except ValueError:
            logger.error("Cannot mark execution failed, payload invalid", job_id=job.id)
            return
        async with self.session_factory() as session:
            await self._engine(session).handle_job_failure(data, failure_message(exc))
