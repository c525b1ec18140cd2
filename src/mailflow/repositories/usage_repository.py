"""Repositories for API keys and the usage log."""

import hashlib
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func
from sqlmodel import select

from src.mailflow.models import ApiKey, UsageRecord
from src.mailflow.repositories.base import BaseRepository


def hash_api_key(raw_key: str) -> str:
    """SHA256 hex digest used to look up API keys."""
    return hashlib.sha256(raw_key.encode()).hexdigest()


class ApiKeyRepository(BaseRepository[ApiKey]):
    model = ApiKey

    async def get_active_by_raw_key(self, raw_key: str) -> ApiKey | None:
        result = await self.session.execute(
            select(ApiKey).where(
                ApiKey.key_hash == hash_api_key(raw_key),
                ApiKey.is_active == True,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()


class UsageRepository(BaseRepository[UsageRecord]):
    """Append-only usage log, queried by count-in-window."""

    model = UsageRecord

    async def count_for_api_key(
        self,
        api_key_id: UUID,
        since: datetime,
        ip_address: str | None = None,
        endpoint: str | None = None,
    ) -> int:
        query = (
            select(func.count())
            .select_from(UsageRecord)
            .where(UsageRecord.api_key_id == api_key_id, UsageRecord.timestamp >= since)
        )
        if ip_address is not None:
            query = query.where(UsageRecord.ip_address == ip_address)
        if endpoint is not None:
            query = query.where(UsageRecord.endpoint == endpoint)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def count_for_tenant(
        self,
        tenant_id: UUID,
        since: datetime,
        ip_address: str | None = None,
        endpoint: str | None = None,
    ) -> int:
        query = (
            select(func.count())
            .select_from(UsageRecord)
            .where(UsageRecord.tenant_id == tenant_id, UsageRecord.timestamp >= since)
        )
        if ip_address is not None:
            query = query.where(UsageRecord.ip_address == ip_address)
        if endpoint is not None:
            query = query.where(UsageRecord.endpoint == endpoint)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def count_rate_limited(self, tenant_id: UUID, since: datetime) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(UsageRecord)
            .where(
                UsageRecord.tenant_id == tenant_id,
                UsageRecord.timestamp >= since,
                UsageRecord.status_code == 429,
            )
        )
        return result.scalar_one()

    async def top_endpoints(
        self, tenant_id: UUID, since: datetime, limit: int = 10
    ) -> list[tuple[str, int]]:
        count = func.count().label("count")
        result = await self.session.execute(
            select(UsageRecord.endpoint, count)
            .where(UsageRecord.tenant_id == tenant_id, UsageRecord.timestamp >= since)
            .group_by(UsageRecord.endpoint)
            .order_by(count.desc(), UsageRecord.endpoint)
            .limit(limit)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def top_ips(
        self, tenant_id: UUID, since: datetime, limit: int = 10
    ) -> list[tuple[str, int]]:
        count = func.count().label("count")
        result = await self.session.execute(
            select(UsageRecord.ip_address, count)
            .where(
                UsageRecord.tenant_id == tenant_id,
                UsageRecord.timestamp >= since,
                UsageRecord.ip_address.is_not(None),  # type: ignore[union-attr]
            )
            .group_by(UsageRecord.ip_address)
            .order_by(count.desc(), UsageRecord.ip_address)
            .limit(limit)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def delete_older_than(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            delete(UsageRecord).where(UsageRecord.timestamp < cutoff)  # type: ignore[arg-type]
        )
        return result.rowcount  # type: ignore[attr-defined]
