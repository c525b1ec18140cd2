"""Repositories for campaigns and email events."""

from uuid import UUID

from sqlalchemy import update
from sqlmodel import select

from src.mailflow.models import Campaign, EmailEvent, EmailEventType
from src.mailflow.repositories.base import BaseRepository

# Campaign counter bumped by each event type
_COUNTER_COLUMNS: dict[EmailEventType, str] = {
    EmailEventType.SENT: "total_sent",
    EmailEventType.DELIVERED: "total_delivered",
    EmailEventType.OPENED: "total_opened",
    EmailEventType.CLICKED: "total_clicked",
    EmailEventType.BOUNCED: "total_bounced",
    EmailEventType.COMPLAINED: "total_complained",
    EmailEventType.UNSUBSCRIBED: "total_unsubscribed",
}


class CampaignRepository(BaseRepository[Campaign]):
    model = Campaign

    async def increment_counter(self, campaign_id: UUID, event_type: EmailEventType) -> bool:
        """Atomically bump the counter for ``event_type``.

        Returns False when the event type has no counter.
        """
        column = _COUNTER_COLUMNS.get(event_type)
        if column is None:
            return False
        counter = getattr(Campaign, column)
        await self.session.execute(
            update(Campaign)
            .where(Campaign.id == campaign_id)  # type: ignore[arg-type]
            .values({column: counter + 1})
        )
        return True


class EmailEventRepository(BaseRepository[EmailEvent]):
    model = EmailEvent

    async def list_for_campaign(
        self, campaign_id: UUID, event_type: EmailEventType | None = None
    ) -> list[EmailEvent]:
        query = select(EmailEvent).where(EmailEvent.campaign_id == campaign_id)
        if event_type is not None:
            query = query.where(EmailEvent.type == event_type.value)
        result = await self.session.execute(query.order_by(EmailEvent.created_at))
        return list(result.scalars().all())
