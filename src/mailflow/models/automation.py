"""Automation and execution models."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Column, Index
from sqlmodel import Field, SQLModel

from src.mailflow.models.base import JSONType, utc_now
from src.mailflow.models.enums import AutomationStatus, ExecutionStatus


class Automation(SQLModel, table=True):
    """An automation owns one workflow graph.

    ``workflow_data`` holds the canonical ``{nodes, connections}`` graph;
    automations created before the graph editor only carry the ordered
    ``workflow_steps`` list, which is adapted to a graph at load time.
    """

    __tablename__ = "automations"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(index=True)
    name: str = Field(max_length=255)
    status: str = Field(default=AutomationStatus.DRAFT.value, max_length=20)
    workflow_data: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSONType, nullable=True),
    )
    workflow_steps: list[dict[str, Any]] | None = Field(
        default=None,
        sa_column=Column(JSONType, nullable=True),
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class AutomationExecution(SQLModel, table=True):
    """One subscriber's run through one automation's graph.

    ``step_log`` is append-only (assign a new list, never mutate in place) and
    ``variables`` holds string values available to merge tags.
    """

    __tablename__ = "automation_executions"
    __table_args__ = (
        Index("ix_automation_executions_tenant_subscriber", "tenant_id", "subscriber_id"),
        Index("ix_automation_executions_automation_status", "automation_id", "status"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    automation_id: UUID = Field(foreign_key="automations.id", index=True)
    subscriber_id: UUID = Field(foreign_key="subscribers.id")
    tenant_id: UUID = Field(index=True)
    status: str = Field(default=ExecutionStatus.PENDING.value, max_length=20)

    current_node_id: str | None = Field(default=None, max_length=100)
    last_executed_node_id: str | None = Field(default=None, max_length=100)
    step_count: int = Field(default=0)
    step_log: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSONType, nullable=False),
    )
    variables: dict[str, str] = Field(
        default_factory=dict,
        sa_column=Column(JSONType, nullable=False),
    )

    next_run_at: datetime | None = Field(default=None)
    error_message: str | None = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)
