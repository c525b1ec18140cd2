"""Request and response schemas for the HTTP surface."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.mailflow.schemas.workflow import StepRecord, TimelineEntry


class StartExecutionRequest(BaseModel):
    subscriber_id: UUID = Field(description="Subscriber entering the automation")
    variables: dict[str, str] = Field(
        default_factory=dict,
        description="Execution variables available to merge tags",
    )


class StartExecutionResponse(BaseModel):
    execution_id: UUID


class ExecutionRead(BaseModel):
    """Execution state as exposed by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    automation_id: UUID
    subscriber_id: UUID
    tenant_id: UUID
    status: str
    current_node_id: str | None
    last_executed_node_id: str | None
    step_count: int
    step_log: list[StepRecord]
    variables: dict[str, str]
    next_run_at: datetime | None
    error_message: str | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None


class TimelineResponse(BaseModel):
    execution_id: UUID
    entries: list[TimelineEntry]


class QueueCounts(BaseModel):
    waiting: int
    active: int
    completed: int
    failed: int
    delayed: int
    paused: bool = False


class QueueStatsResponse(BaseModel):
    email: QueueCounts
    campaign: QueueCounts
    automation: QueueCounts
    analytics: QueueCounts


class MessageResponse(BaseModel):
    message: str
