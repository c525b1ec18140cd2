"""Workflow graph schemas.

Graphs arrive from the editor as camelCase JSON (``sourceNodeId``,
``actionType``...). Node configs are parsed into typed models once, when the
graph is loaded, so the executor never sees a raw dict.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from src.mailflow.models.enums import ActionType, ConnectionCondition, NodeType

_MS_PER_MINUTE = 60 * 1000
_UNIT_MS = {
    "minutes": _MS_PER_MINUTE,
    "hours": 60 * _MS_PER_MINUTE,
    "days": 24 * 60 * _MS_PER_MINUTE,
    "weeks": 7 * 24 * 60 * _MS_PER_MINUTE,
}


class WorkflowModel(BaseModel):
    """Accepts camelCase (editor) and snake_case keys alike."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# --- Node configs ---


class TriggerConfig(WorkflowModel):
    model_config = ConfigDict(extra="allow")

    trigger_type: str | None = None


class SendEmailAction(WorkflowModel):
    action_type: Literal[ActionType.SEND_EMAIL] = ActionType.SEND_EMAIL
    subject: str = ""
    content: str = ""
    from_email: str | None = None
    from_name: str | None = None


class AddToListAction(WorkflowModel):
    action_type: Literal[ActionType.ADD_TO_LIST] = ActionType.ADD_TO_LIST
    list_id: UUID


class RemoveFromListAction(WorkflowModel):
    action_type: Literal[ActionType.REMOVE_FROM_LIST] = ActionType.REMOVE_FROM_LIST
    list_id: UUID


class UpdateFieldAction(WorkflowModel):
    action_type: Literal[ActionType.UPDATE_FIELD] = ActionType.UPDATE_FIELD
    field_name: str = Field(min_length=1)
    value: Any = None


ActionConfig = SendEmailAction | AddToListAction | RemoveFromListAction | UpdateFieldAction


class ConditionConfig(WorkflowModel):
    field: str = Field(min_length=1)
    # Free-form: unknown operators evaluate to false instead of failing the load
    operator: str = "equals"
    value: Any = None


class DelayConfig(WorkflowModel):
    duration: int = 1
    unit: str = "minutes"

    @field_validator("duration", mode="before")
    @classmethod
    def coerce_duration(cls, v: Any) -> int:
        try:
            duration = int(v)
        except (TypeError, ValueError):
            return 1
        return duration if duration >= 1 else 1

    @field_validator("unit", mode="before")
    @classmethod
    def coerce_unit(cls, v: Any) -> str:
        return v if isinstance(v, str) and v else "minutes"

    def delay_ms(self) -> int:
        """Delay in milliseconds. Unknown units count as minutes."""
        return self.duration * _UNIT_MS.get(self.unit, _MS_PER_MINUTE)


class EmailConfig(WorkflowModel):
    subject: str = ""
    content: str = ""
    from_email: str | None = None
    from_name: str | None = None


NodeConfig = TriggerConfig | ActionConfig | ConditionConfig | DelayConfig | EmailConfig

_ACTION_MODELS: dict[ActionType, type[WorkflowModel]] = {
    ActionType.SEND_EMAIL: SendEmailAction,
    ActionType.ADD_TO_LIST: AddToListAction,
    ActionType.REMOVE_FROM_LIST: RemoveFromListAction,
    ActionType.UPDATE_FIELD: UpdateFieldAction,
}

_CONFIG_MODELS: dict[NodeType, type[WorkflowModel]] = {
    NodeType.TRIGGER: TriggerConfig,
    NodeType.CONDITION: ConditionConfig,
    NodeType.DELAY: DelayConfig,
    NodeType.WAIT: DelayConfig,
    NodeType.EMAIL: EmailConfig,
}


def parse_node_config(node_type: NodeType, raw: dict[str, Any] | None) -> NodeConfig:
    """Parse a raw config dict into the typed config for ``node_type``.

    Raises:
        ValueError: Unknown action type.
        pydantic.ValidationError: Missing or malformed required keys.
    """
    raw = raw or {}
    if node_type is not NodeType.ACTION:
        return _CONFIG_MODELS[node_type].model_validate(raw)  # type: ignore[return-value]

    action_type = raw.get("actionType") or raw.get("action_type") or raw.get("type")
    try:
        model = _ACTION_MODELS[ActionType(action_type)]
    except ValueError:
        raise ValueError(f"Unknown action type: {action_type}") from None
    payload = {k: v for k, v in raw.items() if k not in ("actionType", "action_type", "type")}
    return model.model_validate(payload)  # type: ignore[return-value]


# --- Graph ---


class WorkflowNode(WorkflowModel):
    id: str = Field(min_length=1)
    type: NodeType
    label: str | None = None
    config: NodeConfig

    @model_validator(mode="before")
    @classmethod
    def lift_editor_data(cls, value: Any) -> Any:
        """Editor nodes keep label and config under ``data``."""
        if isinstance(value, dict) and isinstance(value.get("data"), dict):
            data = value["data"]
            value = {
                **value,
                "label": value.get("label", data.get("label")),
                "config": value.get("config", data.get("config")),
            }
        return value

    @field_validator("config", mode="before")
    @classmethod
    def parse_config(cls, v: Any, info: ValidationInfo) -> Any:
        node_type = info.data.get("type")
        if node_type is None:
            raise ValueError("Unknown node type")
        if isinstance(v, BaseModel):
            return v
        return parse_node_config(node_type, v)

    @property
    def name(self) -> str:
        return self.label or self.type.value


class WorkflowConnection(WorkflowModel):
    id: str | None = None
    source_node_id: str = Field(
        validation_alias=AliasChoices("sourceNodeId", "source_node_id", "source")
    )
    target_node_id: str = Field(
        validation_alias=AliasChoices("targetNodeId", "target_node_id", "target")
    )
    source_handle: str | None = None
    target_handle: str | None = None
    condition: ConnectionCondition | None = None

    @field_validator("condition", mode="before")
    @classmethod
    def unwrap_condition(cls, v: Any) -> Any:
        """Accept ``"conditional"`` as well as ``{"type": "conditional"}``."""
        if isinstance(v, dict):
            return v.get("type")
        return v or None


class WorkflowGraph(WorkflowModel):
    """Canonical ``{nodes, connections}`` graph of one automation."""

    nodes: list[WorkflowNode]
    connections: list[WorkflowConnection] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_structure(self) -> "WorkflowGraph":
        node_ids = [node.id for node in self.nodes]
        if len(set(node_ids)) != len(node_ids):
            raise ValueError("Duplicate node id in workflow")

        by_id = {node.id: node for node in self.nodes}
        incoming: set[str] = set()
        for conn in self.connections:
            for node_id in (conn.source_node_id, conn.target_node_id):
                if node_id not in by_id:
                    raise ValueError(f"Connection references unknown node: {node_id}")
            if by_id[conn.target_node_id].type is NodeType.TRIGGER:
                raise ValueError(f"Trigger node {conn.target_node_id} cannot have incoming connections")
            incoming.add(conn.target_node_id)

        entry = self.entry_node_id()
        for node in self.nodes:
            if node.type is NodeType.TRIGGER or node.id == entry:
                continue
            if node.id not in incoming:
                raise ValueError(f"Node {node.id} is not reachable")
        return self

    def get_node(self, node_id: str) -> WorkflowNode | None:
        return next((node for node in self.nodes if node.id == node_id), None)

    def outgoing(self, node_id: str) -> list[WorkflowConnection]:
        """Outgoing connections of a node, in declaration order."""
        return [conn for conn in self.connections if conn.source_node_id == node_id]

    def index_of(self, node_id: str) -> int:
        """Declaration index of a node, -1 if absent."""
        for index, node in enumerate(self.nodes):
            if node.id == node_id:
                return index
        return -1

    def trigger(self) -> WorkflowNode | None:
        return next((node for node in self.nodes if node.type is NodeType.TRIGGER), None)

    def entry_node_id(self) -> str | None:
        """First node to execute: first target of the trigger.

        Graphs without a trigger start at the first declared node.
        """
        trigger = self.trigger()
        if trigger is None:
            return self.nodes[0].id if self.nodes else None
        outgoing = self.outgoing(trigger.id)
        return outgoing[0].target_node_id if outgoing else None

    @classmethod
    def from_legacy_steps(cls, steps: list[dict[str, Any]]) -> "WorkflowGraph":
        """Adapt an ordered ``workflowSteps`` list into a linear graph.

        A synthetic trigger precedes the first step and consecutive steps are
        chained with ``always`` connections.
        """
        ordered = sorted(steps, key=lambda step: step.get("position", 0))
        nodes: list[dict[str, Any]] = [
            {"id": "legacy-trigger", "type": NodeType.TRIGGER.value, "config": {}}
        ]
        for step in ordered:
            step_config = step.get("stepConfig") or step.get("step_config") or {}
            step_type = step.get("stepType") or step.get("step_type") or ""
            nodes.append(
                {
                    "id": str(step["id"]),
                    "type": str(step_type).upper(),
                    "label": step_config.get("label"),
                    "config": step_config,
                }
            )
        connections = [
            {
                "id": f"legacy-{source['id']}-{target['id']}",
                "sourceNodeId": source["id"],
                "targetNodeId": target["id"],
                "condition": ConnectionCondition.ALWAYS.value,
            }
            for source, target in zip(nodes, nodes[1:])
        ]
        return cls.model_validate({"nodes": nodes, "connections": connections})


# --- Execution records ---


class StepRecord(BaseModel):
    """One entry of an execution's append-only step log."""

    node_id: str
    node_type: NodeType
    status: Literal["completed", "failed"]
    executed_at: datetime
    duration_ms: int
    error: str | None = None
    data: dict[str, Any] | None = None


@dataclass
class StepResult:
    """Outcome of executing one node."""

    success: bool
    next_node_id: str | None = None
    delay: int | None = None  # milliseconds
    error: str | None = None
    data: dict[str, Any] | None = None
    retryable: bool = False

    @property
    def condition_result(self) -> bool | None:
        if self.data is None or "condition_result" not in self.data:
            return None
        return bool(self.data["condition_result"])


@dataclass
class ExecutionContext:
    """Everything the executor needs to run one node."""

    tenant_id: UUID
    automation_id: UUID
    execution_id: UUID
    subscriber: Any  # Subscriber row
    current_node_id: str
    step: int = 0
    variables: dict[str, str] = field(default_factory=dict)


class TimelineEntry(BaseModel):
    node_id: str
    node_name: str
    node_type: NodeType
    executed_at: datetime | None
    status: Literal["completed", "failed", "skipped", "pending"]
    duration: int | None = None
    error: str | None = None
    data: dict[str, Any] | None = None
