"""Graph loading, caching and next-node resolution."""

from collections import OrderedDict
from datetime import datetime
from uuid import UUID

import pydantic

from src.mailflow.core.exceptions import ValidationError
from src.mailflow.core.logging import get_logger
from src.mailflow.models import Automation, ConnectionCondition
from src.mailflow.schemas.workflow import WorkflowGraph

logger = get_logger(__name__)


def _format_errors(exc: pydantic.ValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        message = error["msg"].removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)


def load_graph(automation: Automation) -> WorkflowGraph:
    """Build the canonical graph of an automation.

    Raises:
        ValidationError: The stored graph is missing or invalid.
    """
    try:
        if automation.workflow_data:
            return WorkflowGraph.model_validate(automation.workflow_data)
        if automation.workflow_steps:
            return WorkflowGraph.from_legacy_steps(automation.workflow_steps)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid workflow: {_format_errors(e)}") from e
    except (KeyError, TypeError, AttributeError) as e:
        raise ValidationError(f"Invalid workflow: {e}") from e
    raise ValidationError("Automation has no workflow")


class GraphCache:
    """Parsed graphs keyed by automation id and ``updated_at``.

    An edited automation gets a new ``updated_at`` and is parsed again.
    """

    def __init__(self, max_size: int = 256):
        self.max_size = max_size
        self._entries: OrderedDict[UUID, tuple[datetime, WorkflowGraph]] = OrderedDict()

    def get(self, automation: Automation) -> WorkflowGraph:
        entry = self._entries.get(automation.id)
        if entry is not None and entry[0] == automation.updated_at:
            self._entries.move_to_end(automation.id)
            return entry[1]

        graph = load_graph(automation)
        self._entries[automation.id] = (automation.updated_at, graph)
        self._entries.move_to_end(automation.id)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)
        logger.debug("Workflow graph loaded", automation_id=str(automation.id), nodes=len(graph.nodes))
        return graph

    def clear(self) -> None:
        self._entries.clear()


def resolve_next(
    graph: WorkflowGraph, node_id: str, condition_result: bool | None = None
) -> str | None:
    """Pick the next node among the outgoing connections of ``node_id``.

    - True condition: first ``conditional`` connection, else the first one.
    - False condition: first ``always`` or unguarded connection. A false result
      never follows a ``conditional`` connection; with none left the
      execution ends.
    - No condition result: first outgoing connection.
    """
    outgoing = graph.outgoing(node_id)
    if not outgoing:
        return None

    if condition_result is True:
        for conn in outgoing:
            if conn.condition is ConnectionCondition.CONDITIONAL:
                return conn.target_node_id
        return outgoing[0].target_node_id

    if condition_result is False:
        for conn in outgoing:
            if conn.condition is None or conn.condition is ConnectionCondition.ALWAYS:
                return conn.target_node_id
        return None

    return outgoing[0].target_node_id
