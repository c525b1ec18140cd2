"""Job payloads for the four queues and the email transport contract."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from src.mailflow.models.base import utc_now
from src.mailflow.models.enums import EmailEventType


class EmailMessage(BaseModel):
    to: str
    from_email: str
    from_name: str | None = None
    subject: str
    html: str
    text: str | None = None
    reply_to: str | None = None


class SendingResult(BaseModel):
    success: bool
    message_id: str | None = None
    error: str | None = None
    provider: str
    timestamp: datetime = Field(default_factory=utc_now)


class EmailJobData(BaseModel):
    tenant_id: UUID
    message: EmailMessage
    subscriber_id: UUID | None = None
    campaign_id: UUID | None = None
    send_at: datetime | None = None
    priority: int = Field(default=0, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class CampaignJobData(BaseModel):
    tenant_id: UUID
    campaign_id: UUID
    batch_size: int = Field(default=100, ge=1)
    offset: int = Field(default=0, ge=0)


class AutomationJobData(BaseModel):
    """Payload of one automation step.

    ``step`` is the execution's step count when the job was enqueued; the
    engine uses it to detect redelivered jobs.
    """

    tenant_id: UUID
    automation_id: UUID
    subscriber_id: UUID
    execution_id: UUID
    current_node_id: str | None = None
    step: int = Field(default=0, ge=0)


class AnalyticsJobData(BaseModel):
    tenant_id: UUID
    type: EmailEventType
    campaign_id: UUID | None = None
    subscriber_id: UUID | None = None
    email: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
