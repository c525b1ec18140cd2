"""API keys and the append-only usage log consulted by the rate limiter."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from src.mailflow.models.base import utc_now


class ApiKey(SQLModel, table=True):
    __tablename__ = "api_keys"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(index=True)
    name: str = Field(max_length=100)
    key_hash: str = Field(max_length=64, unique=True, index=True)  # SHA256 hex
    rate_limit: int | None = Field(default=None)  # requests per window, None = unlimited
    rate_limit_window: int = Field(default=60)  # seconds
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now)


class UsageRecord(SQLModel, table=True):
    """One admitted (or rejected) request or send, counted in time windows."""

    __tablename__ = "usage_records"
    __table_args__ = (
        Index("ix_usage_records_tenant_timestamp", "tenant_id", "timestamp"),
        Index("ix_usage_records_api_key_ip_timestamp", "api_key_id", "ip_address", "timestamp"),
        Index("ix_usage_records_tenant_endpoint_timestamp", "tenant_id", "endpoint", "timestamp"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID
    api_key_id: UUID | None = Field(default=None, foreign_key="api_keys.id")
    ip_address: str | None = Field(default=None, max_length=45)
    endpoint: str = Field(max_length=255)
    status_code: int = Field(default=200)
    timestamp: datetime = Field(default_factory=utc_now)
