"""Subscriber, mailing list and list membership models."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from src.mailflow.models.base import JSONType, utc_now
from src.mailflow.models.enums import SubscriberStatus


class Subscriber(SQLModel, table=True):
    __tablename__ = "subscribers"
    __table_args__ = (UniqueConstraint("tenant_id", "email", name="uq_subscribers_tenant_email"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(index=True)
    email: str = Field(max_length=255)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    status: str = Field(default=SubscriberStatus.ACTIVE.value, max_length=20)
    custom_fields: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONType, nullable=False),
    )
    created_at: datetime = Field(default_factory=utc_now)


class MailingList(SQLModel, table=True):
    __tablename__ = "mailing_lists"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(index=True)
    name: str = Field(max_length=255)
    created_at: datetime = Field(default_factory=utc_now)


class ListMembership(SQLModel, table=True):
    """Subscriber membership in a mailing list (one row per pair)."""

    __tablename__ = "list_memberships"
    __table_args__ = (
        UniqueConstraint("list_id", "subscriber_id", name="uq_list_memberships_list_subscriber"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    list_id: UUID = Field(foreign_key="mailing_lists.id", index=True)
    subscriber_id: UUID = Field(foreign_key="subscribers.id", index=True)
    created_at: datetime = Field(default_factory=utc_now)
