"""Tests for graph loading, caching and next-node resolution."""

from datetime import timedelta
from uuid import uuid4

import pytest

from src.mailflow.core.exceptions import ValidationError
from src.mailflow.schemas.workflow import WorkflowGraph
from src.mailflow.workflow.graph import GraphCache, load_graph, resolve_next
from tests.factories import AutomationFactory, connect, drip_graph, node

pytestmark = pytest.mark.unit


def branching_graph(*connections: dict) -> WorkflowGraph:
    return WorkflowGraph.model_validate(
        {
            "nodes": [
                node("check", "CONDITION", field="status"),
                node("yes", "DELAY"),
                node("no", "DELAY"),
            ],
            "connections": list(connections),
        }
    )


class TestResolveNext:
    def test_true_prefers_conditional_edge(self):
        graph = branching_graph(connect("check", "no", "always"), connect("check", "yes", "conditional"))
        assert resolve_next(graph, "check", True) == "yes"

    def test_true_without_conditional_edge_takes_first(self):
        graph = branching_graph(connect("check", "no", "always"), connect("check", "yes"))
        assert resolve_next(graph, "check", True) == "no"

    def test_false_prefers_always_edge(self):
        graph = branching_graph(connect("check", "yes", "conditional"), connect("check", "no", "always"))
        assert resolve_next(graph, "check", False) == "no"

    def test_false_takes_unguarded_edge(self):
        graph = branching_graph(connect("check", "yes", "conditional"), connect("check", "no"))
        assert resolve_next(graph, "check", False) == "no"

    def test_false_never_follows_conditional_edge(self):
        graph = branching_graph(connect("check", "yes", "conditional"), connect("check", "no", "conditional"))
        assert resolve_next(graph, "check", False) is None

    def test_no_condition_result_takes_first_edge(self):
        graph = branching_graph(connect("check", "yes", "conditional"), connect("check", "no"))
        assert resolve_next(graph, "check") == "yes"

    def test_no_outgoing_edges_is_terminal(self):
        graph = branching_graph(connect("check", "yes"), connect("check", "no"))
        assert resolve_next(graph, "yes") is None


class TestLoadGraph:
    def test_prefers_workflow_data(self):
        automation = AutomationFactory.build(
            tenant_id=uuid4(),
            workflow_data=drip_graph(uuid4()),
            workflow_steps=[{"id": "legacy", "stepType": "delay", "stepConfig": {}}],
        )
        assert load_graph(automation).entry_node_id() == "welcome"

    def test_falls_back_to_legacy_steps(self):
        automation = AutomationFactory.build(
            tenant_id=uuid4(), workflow_steps=[{"id": "s1", "stepType": "delay", "stepConfig": {}}]
        )
        assert load_graph(automation).entry_node_id() == "s1"

    def test_invalid_graph_raises_domain_validation_error(self):
        workflow = {
            "nodes": [node("t", "TRIGGER"), node("go", "ACTION", actionType="teleport")],
            "connections": [connect("t", "go")],
        }
        automation = AutomationFactory.build(tenant_id=uuid4(), workflow_data=workflow)

        with pytest.raises(ValidationError) as exc_info:
            load_graph(automation)

        assert exc_info.value.message.startswith("Invalid workflow: ")
        assert "Unknown action type: teleport" in exc_info.value.message
        assert exc_info.value.retryable is False

    def test_missing_workflow(self):
        with pytest.raises(ValidationError, match="no workflow"):
            load_graph(AutomationFactory.build(tenant_id=uuid4(), workflow_data=None))


class TestGraphCache:
    def test_reuses_graph_until_automation_changes(self):
        cache = GraphCache()
        automation = AutomationFactory.build(tenant_id=uuid4(), workflow_data=drip_graph(uuid4()))

        first = cache.get(automation)
        assert cache.get(automation) is first

        automation.workflow_data = {"nodes": [node("only", "DELAY")]}
        automation.updated_at = automation.updated_at + timedelta(seconds=1)
        second = cache.get(automation)

        assert second is not first
        assert [n.id for n in second.nodes] == ["only"]

    def test_evicts_least_recently_used(self):
        cache = GraphCache(max_size=2)
        automations = [AutomationFactory.build(tenant_id=uuid4(), workflow_data=drip_graph(uuid4())) for _ in range(3)]
        graphs = [cache.get(automation) for automation in automations]

        assert cache.get(automations[2]) is graphs[2]
        assert cache.get(automations[0]) is not graphs[0]
