"""Email queue processor."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.mailflow.core.config import Settings
from src.mailflow.core.exceptions import RateLimitExceededError, TransientError
from src.mailflow.core.logging import get_logger
from src.mailflow.core.notifications.email import EmailTransport
from src.mailflow.jobs.base import JobHandler, parse_payload
from src.mailflow.models import EmailEventType
from src.mailflow.queue.job import Job
from src.mailflow.queue.service import QueueService
from src.mailflow.repositories import UsageRepository
from src.mailflow.schemas.jobs import AnalyticsJobData, EmailJobData
from src.mailflow.services.rate_limit_service import EMAIL_SEND_ENDPOINT, RateLimitService

logger = get_logger(__name__)


class EmailJobHandler(JobHandler):
    """Gate on the tenant send limit, send, record usage, emit a SENT event."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue_service: QueueService,
        transport: EmailTransport,
        settings: Settings | None = None,
    ):
        super().__init__(session_factory, queue_service, settings)
        self.transport = transport

    async def __call__(self, job: Job) -> dict[str, Any]:
        data = parse_payload(EmailJobData, job)

        async with self.session_factory() as session:
            limiter = RateLimitService(UsageRepository(session), self.settings)
            gate = await limiter.check_email_send(data.tenant_id)
            if not gate.allowed:
                raise RateLimitExceededError(
                    "Tenant email rate limit exceeded", retry_after=gate.retry_after
                )
            await self.progress(job, 20)

            result = await self.transport.send(data.message, data.tenant_id)
            await self.progress(job, 60)
            if not result.success:
                raise TransientError(f"Email send failed: {result.error}")

            limiter.record_usage(data.tenant_id, EMAIL_SEND_ENDPOINT)
            await session.commit()
        await self.progress(job, 80)

        try:
            await self.queue_service.add_analytics_job(
                AnalyticsJobData(
                    tenant_id=data.tenant_id,
                    type=EmailEventType.SENT,
                    campaign_id=data.campaign_id,
                    subscriber_id=data.subscriber_id,
                    email=data.message.to,
                    metadata={"message_id": result.message_id, "provider": result.provider},
                )
            )
        except Exception as e:
            logger.warning("Failed to enqueue analytics event", error=str(e))

        await self.progress(job, 100)
        return {"message_id": result.message_id, "provider": result.provider}
