"""Campaign queue processor: fans a campaign out to email jobs, one page per job."""

from src.mailflow.core.exceptions import NotFoundError
from src.mailflow.core.logging import get_logger
from src.mailflow.jobs.base import JobHandler, parse_payload
from src.mailflow.models import CampaignStatus, Subscriber
from src.mailflow.models.base import utc_now
from src.mailflow.queue.definitions import JobName
from src.mailflow.queue.job import Continuation, Job
from src.mailflow.repositories import (
    CampaignRepository,
    ListMembershipRepository,
    SubscriberRepository,
)
from src.mailflow.schemas.jobs import CampaignJobData, EmailJobData, EmailMessage
from src.mailflow.workflow.personalization import personalize

logger = get_logger(__name__)


class CampaignJobHandler(JobHandler):
    async def __call__(self, job: Job) -> Continuation | None:
        data = parse_payload(CampaignJobData, job)

        async with self.session_factory() as session:
            campaign_repo = CampaignRepository(session)
            campaign = await campaign_repo.get_for_tenant(data.campaign_id, data.tenant_id)
            if campaign is None:
                raise NotFoundError(f"Campaign {data.campaign_id} not found")
            if campaign.status == CampaignStatus.SENT.value:
                logger.info("Campaign already sent", campaign_id=str(campaign.id))
                return None

            recipients: list[Subscriber]
            if campaign.list_id is not None:
                membership_repo = ListMembershipRepository(session)
                recipients = await membership_repo.list_active_members(
                    campaign.list_id, data.offset, data.batch_size
                )
                total = await membership_repo.count_active_members(campaign.list_id)
            else:
                subscriber_repo = SubscriberRepository(session)
                recipients = await subscriber_repo.list_active(
                    data.tenant_id, data.offset, data.batch_size
                )
                total = await subscriber_repo.count_active(data.tenant_id)
            await self.progress(job, 20)

            if data.offset == 0 and campaign.status != CampaignStatus.SENDING.value:
                campaign.status = CampaignStatus.SENDING.value
                await session.commit()

            for subscriber in recipients:
                message = EmailMessage(
                    to=subscriber.email,
                    from_email=campaign.from_email or self.settings.email_from,
                    from_name=campaign.from_name,
                    reply_to=campaign.reply_to_email,
                    subject=personalize(campaign.subject, subscriber),
                    html=personalize(campaign.content, subscriber),
                    text=(
                        personalize(campaign.plain_text_content, subscriber)
                        if campaign.plain_text_content
                        else None
                    ),
                )
                await self.queue_service.add_email_job(
                    EmailJobData(
                        tenant_id=data.tenant_id,
                        message=message,
                        subscriber_id=subscriber.id,
                        campaign_id=campaign.id,
                        metadata={"campaign_name": campaign.name},
                    ),
                    job_id=f"campaign:{campaign.id}:{subscriber.id}",
                )
            await self.progress(job, 80)

            next_offset = data.offset + data.batch_size
            if next_offset < total:
                logger.info(
                    "Campaign batch queued",
                    campaign_id=str(campaign.id),
                    recipients=len(recipients),
                    next_offset=next_offset,
                    total=total,
                )
                await self.progress(job, 100)
                return Continuation(
                    name=JobName.SEND_CAMPAIGN.value,
                    data=data.model_copy(update={"offset": next_offset}).model_dump(mode="json"),
                    job_id=f"campaign:{campaign.id}:offset:{next_offset}",
                )

            campaign.status = CampaignStatus.SENT.value
            campaign.sent_at = utc_now()
            await session.commit()
            logger.info("Campaign sent", campaign_id=str(campaign.id), total=total)

        await self.progress(job, 100)
        return None
