"""Repository for Automation entity."""

from sqlmodel import select

from src.mailflow.models import Automation, AutomationStatus
from src.mailflow.repositories.base import BaseRepository


class AutomationRepository(BaseRepository[Automation]):
    model = Automation

    async def list_active(self) -> list[Automation]:
        result = await self.session.execute(
            select(Automation)
            .where(Automation.status == AutomationStatus.ACTIVE.value)
            .order_by(Automation.created_at)
        )
        return list(result.scalars().all())
