"""Editor-shaped workflow graph builders (camelCase, config under ``data``)."""

from typing import Any
from uuid import UUID


def node(node_id: str, node_type: str, **config: Any) -> dict[str, Any]:
    return {
        "id": node_id,
        "type": node_type,
        "data": {"label": node_id.replace("-", " ").title(), "config": config},
    }


def connect(source: str, target: str, condition: str | None = None) -> dict[str, Any]:
    connection: dict[str, Any] = {
        "id": f"{source}->{target}",
        "sourceNodeId": source,
        "targetNodeId": target,
    }
    if condition is not None:
        connection["condition"] = {"type": condition}
    return connection


def drip_graph(list_id: UUID, delay: dict[str, Any] | None = None) -> dict[str, Any]:
    """TRIGGER -> EMAIL -> DELAY -> CONDITION(status == active) -> add to list.

    The add-to-list edge is ``conditional`` and there is no fallback edge, so
    an inactive subscriber completes without joining the list.
    """
    return {
        "nodes": [
            node("trigger", "TRIGGER", triggerType="subscriber_created"),
            node(
                "welcome",
                "EMAIL",
                subject="Welcome {{firstName}}",
                content="<p>Hi {{firstName}}, thanks for joining {{source}}.</p>",
            ),
            node("wait", "DELAY", **(delay or {"duration": 1, "unit": "days"})),
            node("is-active", "CONDITION", field="status", operator="equals", value="active"),
            node("add-to-list", "ACTION", actionType="add_to_list", listId=str(list_id)),
        ],
        "connections": [
            connect("trigger", "welcome"),
            connect("welcome", "wait"),
            connect("wait", "is-active"),
            connect("is-active", "add-to-list", "conditional"),
        ],
    }
