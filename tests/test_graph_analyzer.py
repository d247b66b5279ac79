"""Tests for graph analysis and workflow validation."""

import pytest

from automation_engine.core.exceptions import WorkflowValidationError
from automation_engine.core.graph_analyzer import GraphAnalyzer, WorkflowGraph
from automation_engine.models.core import IssueType, NodeType, WorkflowDefinition


@pytest.fixture
def analyzer():
    return GraphAnalyzer()


class TestWorkflowGraph:
    """Test adjacency lookups."""

    def test_start_nodes_are_nodes_without_incoming_connections(self, make_workflow):
        definition = make_workflow(
            [("a", "trigger"), ("b", "action"), ("c", "action")],
            [("a", "b")],
        )
        graph = WorkflowGraph(definition)

        assert [node.id for node in graph.start_nodes()] == ["a", "c"]

    def test_downstream_follows_connection_order(self, make_workflow):
        definition = make_workflow(
            [("a", "trigger"), ("b", "action"), ("c", "action")],
            [("a", "c"), ("a", "b")],
        )
        graph = WorkflowGraph(definition)

        assert [node.id for node in graph.downstream("a")] == ["c", "b"]
        assert graph.downstream("b") == []

    def test_duplicate_connections_yield_one_downstream_entry(self, make_workflow):
        definition = make_workflow([("a", "trigger"), ("b", "action")], [("a", "b")])
        definition.connections.append(definition.connections[0].model_copy(update={"id": "dup"}))

        assert [node.id for node in WorkflowGraph(definition).downstream("a")] == ["b"]

    def test_find_cycle_returns_path(self, make_workflow):
        definition = make_workflow(
            [("s", "trigger"), ("a", "action"), ("b", "action"), ("c", "action")],
            [("s", "a"), ("a", "b"), ("b", "c"), ("c", "a")],
        )

        assert WorkflowGraph(definition).find_cycle() == ["a", "b", "c", "a"]

    def test_acyclic_diamond_has_no_cycle(self, make_workflow):
        definition = make_workflow(
            [("a", "trigger"), ("b", "action"), ("c", "action"), ("d", "action")],
            [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")],
        )

        assert WorkflowGraph(definition).find_cycle() is None


class TestGraphAnalyzerLookups:
    """Test start-node and downstream lookups on a definition."""

    def test_find_start_nodes(self, analyzer, make_workflow):
        definition = make_workflow(
            [("a", "trigger"), ("b", "action"), ("c", "trigger"), ("d", "action")],
            [("a", "b"), ("c", "d"), ("b", "d")],
        )

        assert [node.id for node in analyzer.find_start_nodes(definition)] == ["a", "c"]

    def test_find_start_nodes_of_a_cycle_is_empty(self, analyzer, make_workflow):
        definition = make_workflow([("a", "action"), ("b", "action")], [("a", "b"), ("b", "a")])

        assert analyzer.find_start_nodes(definition) == []

    def test_find_downstream(self, analyzer, make_workflow):
        definition = make_workflow(
            [("a", "trigger"), ("b", "action"), ("c", "delay")],
            [("a", "c"), ("a", "b"), ("b", "c")],
        )

        assert [node.id for node in analyzer.find_downstream(definition, "a")] == ["c", "b"]
        assert [node.id for node in analyzer.find_downstream(definition, "b")] == ["c"]
        assert analyzer.find_downstream(definition, "c") == []
        assert analyzer.find_downstream(definition, "missing") == []


class TestGraphAnalyzerValidation:
    """Test structural validation rules."""

    def test_valid_linear_workflow(self, analyzer, make_workflow):
        definition = make_workflow([("a", "trigger"), ("b", "action")], [("a", "b")])

        result = analyzer.validate(definition)

        assert result.valid
        assert result.errors == []

    def test_missing_name_is_an_error(self, analyzer, make_workflow):
        definition = make_workflow([("a", "trigger")], name="   ")

        result = analyzer.validate(definition)

        assert not result.valid
        assert any("name is required" in issue.message for issue in result.errors)

    def test_empty_workflow_is_an_error(self, analyzer):
        result = analyzer.validate(WorkflowDefinition(name="Empty"))

        assert not result.valid
        assert any("at least one node" in issue.message for issue in result.errors)

    def test_duplicate_node_ids(self, analyzer, make_workflow):
        definition = make_workflow([("a", "trigger"), ("a", "action")])

        result = analyzer.validate(definition)

        assert not result.valid
        assert any(issue.node_id == "a" and "Duplicate" in issue.message for issue in result.errors)

    def test_no_start_node_is_logic_error(self, analyzer, make_workflow):
        definition = make_workflow([("a", "action"), ("b", "action")], [("a", "b"), ("b", "a")])

        result = analyzer.validate(definition)

        assert not result.valid
        logic_messages = [issue.message for issue in result.errors if issue.type == IssueType.LOGIC]
        assert any("start node" in message for message in logic_messages)
        assert any("circular" in message for message in logic_messages)

    def test_three_node_cycle_is_reported(self, analyzer, make_workflow):
        definition = make_workflow(
            [("s", "trigger"), ("a", "action"), ("b", "action"), ("c", "action")],
            [("s", "a"), ("a", "b"), ("b", "c"), ("c", "a")],
        )

        result = analyzer.validate(definition)

        assert not result.valid
        cycle_errors = [issue for issue in result.errors if "circular" in issue.message]
        assert len(cycle_errors) == 1
        assert "a -> b -> c -> a" in cycle_errors[0].message

    def test_self_loop_is_a_cycle(self, analyzer, make_workflow):
        definition = make_workflow([("s", "trigger"), ("a", "action")], [("s", "a"), ("a", "a")])

        result = analyzer.validate(definition)

        assert not result.valid
        assert any("a -> a" in issue.message for issue in result.errors)
        assert analyzer.has_cycle(definition)

    def test_dangling_connection_endpoints(self, analyzer, make_workflow):
        definition = make_workflow([("a", "trigger")], [("a", "ghost"), ("phantom", "a")])

        result = analyzer.validate(definition)

        connection_errors = [issue for issue in result.errors if issue.type == IssueType.CONNECTION]
        assert {issue.connection_id for issue in connection_errors} == {"a-ghost", "phantom-a"}
        assert any("target node ghost" in issue.message for issue in connection_errors)
        assert any("source node phantom" in issue.message for issue in connection_errors)

    def test_isolated_node_and_disabled_workflow_are_warnings(self, analyzer, make_workflow):
        definition = make_workflow([("a", "trigger"), ("b", "action"), ("lonely", "delay")], [("a", "b")])
        definition.enabled = False

        result = analyzer.validate(definition)

        assert result.valid
        messages = [issue.message for issue in result.warnings]
        assert "Workflow is disabled" in messages
        assert any("lonely" in message for message in messages)

    def test_unregistered_node_type_is_a_warning(self, analyzer, make_workflow):
        definition = make_workflow([("a", "trigger"), ("b", "branch")], [("a", "b")])

        result = analyzer.validate(definition, known_types=[NodeType.TRIGGER])

        assert result.valid
        assert any(issue.node_id == "b" and "branch" in issue.message for issue in result.warnings)

    def test_ensure_valid_raises_validation_error(self, analyzer, make_workflow):
        definition = make_workflow([("a", "action")], [("a", "a")])

        with pytest.raises(WorkflowValidationError) as exc_info:
            analyzer.ensure_valid(definition)

        assert exc_info.value.validation_errors
        assert exc_info.value.context["workflow_id"] == "wf-test"
