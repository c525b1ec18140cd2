"""Execution timeline reconstruction (read-only)."""

from datetime import datetime
from typing import Any

from src.mailflow.models import AutomationExecution, NodeType
from src.mailflow.schemas.workflow import TimelineEntry, WorkflowGraph


def _latest_entries(step_log: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    latest: dict[str, dict[str, Any]] = {}
    for entry in step_log:
        latest[entry["node_id"]] = entry
    return latest


def build_timeline(execution: AutomationExecution, graph: WorkflowGraph) -> list[TimelineEntry]:
    """Replay an execution's step log against its graph.

    A node's status is its latest log entry if it has one. Otherwise the
    current node is ``pending``, and nodes declared at or before the last
    executed node are inferred ``completed``; that inference can mark nodes
    on a branch that was never taken as completed.
    """
    latest = _latest_entries(execution.step_log or [])
    start_time = execution.started_at or execution.created_at
    last_index = (
        graph.index_of(execution.last_executed_node_id)
        if execution.last_executed_node_id
        else -1
    )

    entries: list[TimelineEntry] = []
    for index, node in enumerate(graph.nodes):
        if node.type is NodeType.TRIGGER:
            continue

        record = latest.get(node.id)
        if record is not None:
            entries.append(
                TimelineEntry(
                    node_id=node.id,
                    node_name=node.name,
                    node_type=node.type,
                    executed_at=datetime.fromisoformat(record["executed_at"]),
                    status=record["status"],
                    duration=record.get("duration_ms"),
                    error=record.get("error"),
                    data=record.get("data"),
                )
            )
            continue

        if node.id == execution.current_node_id:
            status = "pending"
        elif last_index >= 0 and index <= last_index:
            status = "completed"
        else:
            status = "pending"
        entries.append(
            TimelineEntry(
                node_id=node.id,
                node_name=node.name,
                node_type=node.type,
                executed_at=start_time,
                status=status,
            )
        )

    # sorted() is stable, so unexecuted nodes keep declaration order
    return sorted(entries, key=lambda entry: entry.executed_at or start_time)
