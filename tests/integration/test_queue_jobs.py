"""Email, campaign and analytics queue processors.

Tests cover:
- Campaign fan-out in pages chained by continuation
- Email sends gated by the tenant limit and recorded as usage
- Analytics events and campaign counters
"""

from uuid import UUID

import pytest
from sqlalchemy import func, select

from src.mailflow.core.exceptions import RateLimitExceededError, TransientError
from src.mailflow.core.notifications.email import LogOnlyTransport
from src.mailflow.jobs import AnalyticsJobHandler, EmailJobHandler
from src.mailflow.models import (
    Campaign,
    CampaignStatus,
    EmailEvent,
    EmailEventType,
    ListMembership,
    UsageRecord,
)
from src.mailflow.queue import Job, JobStatus, QueueName
from src.mailflow.repositories import EmailEventRepository
from src.mailflow.schemas.jobs import (
    AnalyticsJobData,
    CampaignJobData,
    EmailJobData,
    EmailMessage,
    SendingResult,
)
from src.mailflow.services.rate_limit_service import EMAIL_SEND_ENDPOINT
from tests.factories import CampaignFactory, SubscriberFactory, persist
from tests.helpers import run_until_idle

pytestmark = pytest.mark.integration


class FailingTransport:
    provider = "failing"

    async def send(self, message: EmailMessage, tenant_id: UUID) -> SendingResult:
        return SendingResult(success=False, error="connection reset", provider=self.provider)


def email_data(tenant_id: UUID, **kwargs) -> EmailJobData:
    return EmailJobData(
        tenant_id=tenant_id,
        message=EmailMessage(to="ada@example.com", from_email="noreply@example.com", subject="Hi", html="<p>Hi</p>"),
        **kwargs,
    )


async def claim(queue_service, name: QueueName) -> Job:
    job = await queue_service.get_queue(name).claim()
    assert job is not None
    return job


class TestCampaignFanOut:
    @pytest.fixture
    async def campaign(self, db_session, tenant_id, mailing_list) -> Campaign:
        subscribers = [SubscriberFactory.build(tenant_id=tenant_id, first_name=f"Reader{i}") for i in range(250)]
        await persist(db_session, *subscribers)
        await persist(
            db_session,
            *(ListMembership(list_id=mailing_list.id, subscriber_id=s.id) for s in subscribers),
            SubscriberFactory.inactive(tenant_id=tenant_id),
        )
        (created,) = await persist(db_session, CampaignFactory.build(tenant_id=tenant_id, list_id=mailing_list.id))
        return created

    async def test_pages_through_the_list(
        self, campaign, tenant_id, queue_service, make_workers, clock, session_factory
    ) -> None:
        await queue_service.add_campaign_job(CampaignJobData(tenant_id=tenant_id, campaign_id=campaign.id))

        processed = await run_until_idle(make_workers(QueueName.CAMPAIGN), clock)

        assert processed == 3
        campaigns = queue_service.get_queue(QueueName.CAMPAIGN)
        for offset in (100, 200):
            page = await campaigns.get_job(f"campaign:{campaign.id}:offset:{offset}")
            assert page.status is JobStatus.COMPLETED
            assert page.data["offset"] == offset
        assert (await campaigns.get_job(f"campaign:{campaign.id}:offset:300")) is None

        emails = queue_service.get_queue(QueueName.EMAIL)
        assert (await emails.get_job_counts())["waiting"] == 250

        async with session_factory() as session:
            stored = await session.get(Campaign, campaign.id)
        assert stored.status == CampaignStatus.SENT.value
        assert stored.sent_at is not None

    async def test_emails_are_personalized_per_recipient(
        self, campaign, tenant_id, queue_service, make_workers, clock
    ) -> None:
        await queue_service.add_campaign_job(
            CampaignJobData(tenant_id=tenant_id, campaign_id=campaign.id, batch_size=500)
        )
        await run_until_idle(make_workers(QueueName.CAMPAIGN), clock)

        emails = queue_service.get_queue(QueueName.EMAIL)
        job = await emails.claim()
        assert job.id.startswith(f"campaign:{campaign.id}:")
        assert job.data["message"]["subject"].startswith("Hello Reader")
        assert job.data["campaign_id"] == str(campaign.id)

    async def test_sent_campaign_is_not_resent(
        self, campaign, tenant_id, queue_service, make_workers, clock, db_session
    ) -> None:
        campaign.status = CampaignStatus.SENT.value
        await db_session.commit()
        await queue_service.add_campaign_job(CampaignJobData(tenant_id=tenant_id, campaign_id=campaign.id))

        await run_until_idle(make_workers(QueueName.CAMPAIGN), clock)

        assert (await queue_service.get_queue(QueueName.EMAIL).get_job_counts())["waiting"] == 0


class TestEmailHandler:
    async def test_send_records_usage_and_emits_event(
        self, tenant_id, queue_service, session_factory, settings
    ) -> None:
        handler = EmailJobHandler(session_factory, queue_service, LogOnlyTransport(), settings)
        await queue_service.add_email_job(email_data(tenant_id))
        job = await claim(queue_service, QueueName.EMAIL)

        result = await handler(job)

        assert result["provider"] == "log"
        assert result["message_id"].startswith("log-")
        async with session_factory() as session:
            usage = await session.execute(
                select(func.count()).select_from(UsageRecord).where(UsageRecord.endpoint == EMAIL_SEND_ENDPOINT)
            )
        assert usage.scalar_one() == 1

        event = await claim(queue_service, QueueName.ANALYTICS)
        assert event.data["type"] == EmailEventType.SENT.value
        assert event.data["email"] == "ada@example.com"
        assert event.data["metadata"]["message_id"] == result["message_id"]

    async def test_transport_failure_is_retryable(self, tenant_id, queue_service, session_factory, settings) -> None:
        handler = EmailJobHandler(session_factory, queue_service, FailingTransport(), settings)
        await queue_service.add_email_job(email_data(tenant_id))
        job = await claim(queue_service, QueueName.EMAIL)

        with pytest.raises(TransientError, match="connection reset"):
            await handler(job)

        async with session_factory() as session:
            usage = await session.execute(select(func.count()).select_from(UsageRecord))
        assert usage.scalar_one() == 0

    async def test_rate_limited_send(self, db_session, tenant_id, queue_service, session_factory, settings) -> None:
        await persist(db_session, UsageRecord(tenant_id=tenant_id, endpoint=EMAIL_SEND_ENDPOINT))
        tight = settings.model_copy(update={"email_sends_per_minute": 1})
        handler = EmailJobHandler(session_factory, queue_service, LogOnlyTransport(), tight)
        await queue_service.add_email_job(email_data(tenant_id))
        job = await claim(queue_service, QueueName.EMAIL)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await handler(job)

        assert exc_info.value.retry_after == 60

    async def test_worker_retries_rate_limited_send(
        self, db_session, tenant_id, queue_service, make_workers, settings
    ) -> None:
        await persist(db_session, UsageRecord(tenant_id=tenant_id, endpoint=EMAIL_SEND_ENDPOINT))
        tight = settings.model_copy(update={"email_sends_per_minute": 1})
        job = await queue_service.add_email_job(email_data(tenant_id))
        (worker,) = make_workers(QueueName.EMAIL, worker_settings=tight)

        await worker.run_once()

        retried = await queue_service.get_queue(QueueName.EMAIL).get_job(job.id)
        assert retried.status is JobStatus.DELAYED
        assert retried.attempts_made == 1


class TestAnalyticsHandler:
    async def test_records_event_and_bumps_counter(
        self, db_session, tenant_id, queue_service, session_factory, settings
    ) -> None:
        (campaign,) = await persist(db_session, CampaignFactory.build(tenant_id=tenant_id))
        handler = AnalyticsJobHandler(session_factory, queue_service, settings)
        for _ in range(2):
            await queue_service.add_analytics_job(
                AnalyticsJobData(
                    tenant_id=tenant_id,
                    type=EmailEventType.SENT,
                    campaign_id=campaign.id,
                    email="ada@example.com",
                    metadata={"provider": "log"},
                )
            )
            await handler(await claim(queue_service, QueueName.ANALYTICS))

        async with session_factory() as session:
            stored = await session.get(Campaign, campaign.id)
            events = await EmailEventRepository(session).list_for_campaign(campaign.id, EmailEventType.SENT)
            opened = await EmailEventRepository(session).list_for_campaign(campaign.id, EmailEventType.OPENED)
        assert stored.total_sent == 2
        assert len(events) == 2
        assert opened == []
        assert events[0].event_metadata == {"provider": "log"}

    async def test_event_without_campaign(self, tenant_id, queue_service, session_factory, settings) -> None:
        handler = AnalyticsJobHandler(session_factory, queue_service, settings)
        await queue_service.add_analytics_job(AnalyticsJobData(tenant_id=tenant_id, type=EmailEventType.OPENED))

        result = await handler(await claim(queue_service, QueueName.ANALYTICS))

        async with session_factory() as session:
            event = await session.get(EmailEvent, UUID(result["event_id"]))
        assert event.type == EmailEventType.OPENED.value
        assert event.event_metadata is None
