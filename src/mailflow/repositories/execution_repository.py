"""Repository for AutomationExecution entity."""

from uuid import UUID

from sqlmodel import select

from src.mailflow.models import AutomationExecution
from src.mailflow.repositories.base import BaseRepository


class ExecutionRepository(BaseRepository[AutomationExecution]):
    model = AutomationExecution

    async def get_for_update(self, id: UUID) -> AutomationExecution | None:
        """Get an execution and lock its row until the transaction ends.

        Serializes concurrent writers (a step commit racing a pause or cancel)
        on databases that support row locks.
        """
        result = await self.session.execute(
            select(AutomationExecution)
            .where(AutomationExecution.id == id)
            .with_for_update()
        )
        return result.scalar_one_or_none()
