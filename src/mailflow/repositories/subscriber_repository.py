"""Repositories for subscribers, mailing lists and list memberships."""

from uuid import UUID

from sqlalchemy import delete, func
from sqlmodel import select

from src.mailflow.models import ListMembership, MailingList, Subscriber, SubscriberStatus
from src.mailflow.repositories.base import BaseRepository


class SubscriberRepository(BaseRepository[Subscriber]):
    model = Subscriber

    async def list_active(self, tenant_id: UUID, offset: int, limit: int) -> list[Subscriber]:
        """Page through a tenant's active subscribers in stable order."""
        result = await self.session.execute(
            select(Subscriber)
            .where(
                Subscriber.tenant_id == tenant_id,
                Subscriber.status == SubscriberStatus.ACTIVE.value,
            )
            .order_by(Subscriber.created_at, Subscriber.id)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_active(self, tenant_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(Subscriber)
            .where(
                Subscriber.tenant_id == tenant_id,
                Subscriber.status == SubscriberStatus.ACTIVE.value,
            )
        )
        return result.scalar_one()


class MailingListRepository(BaseRepository[MailingList]):
    model = MailingList


class ListMembershipRepository(BaseRepository[ListMembership]):
    model = ListMembership

    async def get_membership(self, list_id: UUID, subscriber_id: UUID) -> ListMembership | None:
        result = await self.session.execute(
            select(ListMembership).where(
                ListMembership.list_id == list_id,
                ListMembership.subscriber_id == subscriber_id,
            )
        )
        return result.scalar_one_or_none()

    async def remove(self, list_id: UUID, subscriber_id: UUID) -> int:
        """Delete a membership if present. Returns the number of rows removed."""
        result = await self.session.execute(
            delete(ListMembership).where(
                ListMembership.list_id == list_id,  # type: ignore[arg-type]
                ListMembership.subscriber_id == subscriber_id,  # type: ignore[arg-type]
            )
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def list_active_members(
        self, list_id: UUID, offset: int, limit: int
    ) -> list[Subscriber]:
        """Page through a list's active subscribers in stable order."""
        result = await self.session.execute(
            select(Subscriber)
            .join(ListMembership, ListMembership.subscriber_id == Subscriber.id)  # type: ignore[arg-type]
            .where(
                ListMembership.list_id == list_id,
                Subscriber.status == SubscriberStatus.ACTIVE.value,
            )
            .order_by(ListMembership.created_at, ListMembership.id)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_active_members(self, list_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(ListMembership)
            .join(Subscriber, ListMembership.subscriber_id == Subscriber.id)  # type: ignore[arg-type]
            .where(
                ListMembership.list_id == list_id,
                Subscriber.status == SubscriberStatus.ACTIVE.value,
            )
        )
        return result.scalar_one()
