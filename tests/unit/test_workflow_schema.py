"""Tests for workflow graph parsing and validation (src/mailflow/schemas/workflow.py)."""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from src.mailflow.models import ConnectionCondition, NodeType
from src.mailflow.schemas.workflow import (
    AddToListAction,
    ConditionConfig,
    DelayConfig,
    EmailConfig,
    UpdateFieldAction,
    WorkflowGraph,
    parse_node_config,
)
from tests.factories import connect, drip_graph, node

pytestmark = pytest.mark.unit


class TestNodeConfigs:
    def test_delay_two_hours(self):
        assert DelayConfig(duration=2, unit="hours").delay_ms() == 7_200_000

    @pytest.mark.parametrize(
        ("raw", "expected_ms"),
        [
            ({"duration": 3, "unit": "minutes"}, 180_000),
            ({"duration": 1, "unit": "days"}, 86_400_000),
            ({"duration": 1, "unit": "weeks"}, 604_800_000),
            ({"duration": 5, "unit": "fortnights"}, 300_000),
            ({"duration": 0, "unit": "hours"}, 3_600_000),
            ({"duration": -4}, 60_000),
            ({"duration": "soon"}, 60_000),
            ({}, 60_000),
        ],
    )
    def test_delay_defaults(self, raw, expected_ms):
        assert DelayConfig.model_validate(raw).delay_ms() == expected_ms

    def test_action_config_is_typed_by_action_type(self):
        list_id = uuid4()
        config = parse_node_config(NodeType.ACTION, {"actionType": "add_to_list", "listId": str(list_id)})
        assert isinstance(config, AddToListAction)
        assert config.list_id == list_id

    def test_update_field_accepts_snake_case(self):
        config = parse_node_config(
            NodeType.ACTION, {"action_type": "update_field", "field_name": "plan", "value": "pro"}
        )
        assert isinstance(config, UpdateFieldAction)
        assert config.field_name == "plan"

    def test_unknown_action_type(self):
        with pytest.raises(ValueError, match="Unknown action type: teleport"):
            parse_node_config(NodeType.ACTION, {"actionType": "teleport"})

    @pytest.mark.parametrize(
        ("node_type", "raw"),
        [
            (NodeType.ACTION, {"actionType": "add_to_list"}),
            (NodeType.ACTION, {"actionType": "update_field"}),
            (NodeType.CONDITION, {"operator": "equals", "value": "x"}),
        ],
    )
    def test_missing_required_key(self, node_type, raw):
        with pytest.raises(ValidationError):
            parse_node_config(node_type, raw)

    def test_email_and_condition_configs(self):
        email = parse_node_config(NodeType.EMAIL, {"subject": "Hi", "fromName": "Team"})
        condition = parse_node_config(NodeType.CONDITION, {"field": "status"})
        assert isinstance(email, EmailConfig)
        assert email.from_name == "Team"
        assert isinstance(condition, ConditionConfig)
        assert condition.operator == "equals"


class TestWorkflowGraph:
    def test_parses_editor_graph(self):
        graph = WorkflowGraph.model_validate(drip_graph(uuid4()))

        assert [n.id for n in graph.nodes] == ["trigger", "welcome", "wait", "is-active", "add-to-list"]
        assert graph.get_node("welcome").name == "Welcome"
        assert graph.entry_node_id() == "welcome"
        assert graph.outgoing("is-active")[0].condition is ConnectionCondition.CONDITIONAL

    def test_connection_condition_accepts_string(self):
        graph = WorkflowGraph.model_validate(
            {
                "nodes": [node("a", "DELAY"), node("b", "DELAY")],
                "connections": [
                    {"source": "a", "target": "b", "condition": "always"},
                ],
            }
        )
        assert graph.connections[0].condition is ConnectionCondition.ALWAYS
        assert graph.entry_node_id() == "a"

    def test_flat_node_config(self):
        graph = WorkflowGraph.model_validate(
            {"nodes": [{"id": "d", "type": "WAIT", "label": "Pause", "config": {"duration": 2}}]}
        )
        assert graph.nodes[0].name == "Pause"
        assert graph.nodes[0].config.delay_ms() == 120_000

    def test_duplicate_node_ids_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate node id"):
            WorkflowGraph.model_validate({"nodes": [node("a", "DELAY"), node("a", "DELAY")]})

    def test_unknown_connection_reference_rejected(self):
        with pytest.raises(ValidationError, match="unknown node: ghost"):
            WorkflowGraph.model_validate(
                {"nodes": [node("a", "DELAY")], "connections": [connect("a", "ghost")]}
            )

    def test_trigger_cannot_have_incoming_connections(self):
        with pytest.raises(ValidationError, match="cannot have incoming"):
            WorkflowGraph.model_validate(
                {
                    "nodes": [node("t", "TRIGGER"), node("a", "DELAY")],
                    "connections": [connect("t", "a"), connect("a", "t")],
                }
            )

    def test_unreachable_node_rejected(self):
        with pytest.raises(ValidationError, match="Node orphan is not reachable"):
            WorkflowGraph.model_validate(
                {
                    "nodes": [node("t", "TRIGGER"), node("a", "DELAY"), node("orphan", "DELAY")],
                    "connections": [connect("t", "a")],
                }
            )

    def test_unknown_node_type_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowGraph.model_validate({"nodes": [node("x", "WEBHOOK")]})

    def test_trigger_without_connections_has_no_entry(self):
        graph = WorkflowGraph.model_validate({"nodes": [node("t", "TRIGGER")]})
        assert graph.entry_node_id() is None


class TestLegacySteps:
    def test_steps_become_linear_graph(self):
        list_id = uuid4()
        steps = [
            {"id": "s2", "stepType": "action", "position": 2,
             "stepConfig": {"actionType": "add_to_list", "listId": str(list_id)}},
            {"id": "s1", "stepType": "email", "position": 1,
             "stepConfig": {"subject": "Hi", "content": "Body", "label": "Intro"}},
        ]

        graph = WorkflowGraph.from_legacy_steps(steps)

        assert [n.id for n in graph.nodes] == ["legacy-trigger", "s1", "s2"]
        assert graph.nodes[0].type is NodeType.TRIGGER
        assert graph.get_node("s1").name == "Intro"
        assert graph.entry_node_id() == "s1"
        assert [(c.source_node_id, c.target_node_id) for c in graph.connections] == [
            ("legacy-trigger", "s1"),
            ("s1", "s2"),
        ]
        assert all(c.condition is ConnectionCondition.ALWAYS for c in graph.connections)
