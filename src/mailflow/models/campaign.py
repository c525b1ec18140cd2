"""Campaign and email event models."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Column, Index
from sqlmodel import Field, SQLModel

from src.mailflow.models.base import JSONType, utc_now
from src.mailflow.models.enums import CampaignStatus


class Campaign(SQLModel, table=True):
    __tablename__ = "campaigns"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(index=True)
    list_id: UUID | None = Field(default=None, foreign_key="mailing_lists.id")
    name: str = Field(max_length=255)
    subject: str = Field(max_length=500)
    content: str
    plain_text_content: str | None = Field(default=None)
    from_email: str | None = Field(default=None, max_length=255)
    from_name: str | None = Field(default=None, max_length=255)
    reply_to_email: str | None = Field(default=None, max_length=255)
    status: str = Field(default=CampaignStatus.DRAFT.value, max_length=20)
    sent_at: datetime | None = Field(default=None)

    total_sent: int = Field(default=0)
    total_delivered: int = Field(default=0)
    total_opened: int = Field(default=0)
    total_clicked: int = Field(default=0)
    total_bounced: int = Field(default=0)
    total_complained: int = Field(default=0)
    total_unsubscribed: int = Field(default=0)

    created_at: datetime = Field(default_factory=utc_now)


class EmailEvent(SQLModel, table=True):
    """Email lifecycle event ingested by the analytics queue."""

    __tablename__ = "email_events"
    __table_args__ = (
        Index("ix_email_events_tenant_created", "tenant_id", "created_at"),
        Index("ix_email_events_campaign_type", "campaign_id", "type"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(index=True)
    type: str = Field(max_length=20)  # EmailEventType value
    campaign_id: UUID | None = Field(default=None)
    subscriber_id: UUID | None = Field(default=None)
    email: str | None = Field(default=None, max_length=255)
    ip_address: str | None = Field(default=None, max_length=45)
    user_agent: str | None = Field(default=None, max_length=500)
    event_metadata: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSONType, nullable=True),
    )
    created_at: datetime = Field(default_factory=utc_now)
