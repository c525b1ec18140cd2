"""Analytics queue processor: email events and campaign counters."""

from typing import Any

from src.mailflow.jobs.base import JobHandler, parse_payload
from src.mailflow.models import EmailEvent
from src.mailflow.queue.job import Job
from src.mailflow.repositories import CampaignRepository, EmailEventRepository
from src.mailflow.schemas.jobs import AnalyticsJobData


class AnalyticsJobHandler(JobHandler):
    async def __call__(self, job: Job) -> dict[str, Any]:
        data = parse_payload(AnalyticsJobData, job)

        async with self.session_factory() as session:
            event = EmailEvent(
                tenant_id=data.tenant_id,
                type=data.type.value,
                campaign_id=data.campaign_id,
                subscriber_id=data.subscriber_id,
                email=data.email,
                event_metadata=data.metadata or None,
            )
            EmailEventRepository(session).add(event)
            await self.progress(job, 40)

            if data.campaign_id is not None:
                await CampaignRepository(session).increment_counter(data.campaign_id, data.type)
            await session.commit()

        await self.progress(job, 100)
        return {"event_id": str(event.id)}
