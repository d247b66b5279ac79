"""Graph analysis and structural validation of workflow definitions."""

from typing import Dict, Iterable, Iterator, List, Optional, Set

from ..models.core import (
    IssueSeverity,
    IssueType,
    NodeType,
    ValidationIssue,
    ValidationResult,
    WorkflowDefinition,
    WorkflowNode,
)
from .exceptions import WorkflowValidationError
from .logging import get_logger

logger = get_logger(__name__)


class WorkflowGraph:
    """Adjacency index over a definition's nodes and connections.

    Built once per run or validation pass so that start-node and downstream
    lookups do not rescan the connection list.
    """

    def __init__(self, definition: WorkflowDefinition):
        self.definition = definition
        self.nodes_by_id: Dict[str, WorkflowNode] = {}
        self.duplicate_ids: List[str] = []
        for node in definition.nodes:
            if node.id in self.nodes_by_id:
                self.duplicate_ids.append(node.id)
                continue
            self.nodes_by_id[node.id] = node

        self.target_ids: Set[str] = set()
        self._downstream: Dict[str, List[str]] = {node_id: [] for node_id in self.nodes_by_id}
        self._has_incident_edge: Set[str] = set()

        for connection in definition.connections:
            self.target_ids.add(connection.target_node_id)
            source, target = connection.source_node_id, connection.target_node_id
            if source in self.nodes_by_id and target in self.nodes_by_id:
                if target not in self._downstream[source]:
                    self._downstream[source].append(target)
                self._has_incident_edge.update((source, target))

    def start_nodes(self) -> List[WorkflowNode]:
        """Nodes that are not the target of any connection."""
        return [node for node_id, node in self.nodes_by_id.items() if node_id not in self.target_ids]

    def downstream(self, node_id: str) -> List[WorkflowNode]:
        """Nodes targeted by connections leaving ``node_id``, in connection order."""
        return [self.nodes_by_id[target] for target in self._downstream.get(node_id, [])]

    def isolated_nodes(self) -> List[str]:
        """Nodes with no incoming or outgoing connection."""
        return [node_id for node_id in self.nodes_by_id if node_id not in self._has_incident_edge]

    def find_cycle(self) -> Optional[List[str]]:
        """
        Find a directed cycle, if any.

        Iterative depth-first walk per unvisited node, keeping the active
        path as an explicit stack. A target already on the active path closes
        a cycle (self-loops included). Nodes whose subtree has been fully
        explored are memoized, so the walk is linear in nodes plus edges.

        Returns:
            The node ids along the cycle with the first id repeated at the
            end, or None for an acyclic graph.
        """
        cleared: Set[str] = set()

        for root in self.nodes_by_id:
            if root in cleared:
                continue

            path: List[str] = [root]
            on_path: Set[str] = {root}
            pending: List[Iterator[str]] = [iter(self._downstream[root])]

            while pending:
                target = next(pending[-1], None)
                if target is None:
                    finished = path.pop()
                    on_path.discard(finished)
                    cleared.add(finished)
                    pending.pop()
                    continue
                if target in on_path:
                    return path[path.index(target):] + [target]
                if target in cleared:
                    continue
                path.append(target)
                on_path.add(target)
                pending.append(iter(self._downstream[target]))

        return None


class GraphAnalyzer:
    """Finds start nodes and downstream neighbors, and validates workflow structure."""

    def find_start_nodes(self, definition: WorkflowDefinition) -> List[WorkflowNode]:
        return WorkflowGraph(definition).start_nodes()

    def find_downstream(self, definition: WorkflowDefinition, node_id: str) -> List[WorkflowNode]:
        return WorkflowGraph(definition).downstream(node_id)

    def has_cycle(self, definition: WorkflowDefinition) -> bool:
        return WorkflowGraph(definition).find_cycle() is not None

    def validate(
        self,
        definition: WorkflowDefinition,
        known_types: Optional[Iterable[NodeType]] = None
    ) -> ValidationResult:
        """
        Validate a workflow definition for structural correctness.

        Args:
            definition: The workflow definition to validate
            known_types: Node types with a registered executor; nodes of any
                other type produce a warning

        Returns:
            ValidationResult: Validation results with errors and warnings
        """
        logger.debug(f"Validating workflow: {definition.name or definition.id}")

        graph = WorkflowGraph(definition)
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []

        if not definition.name or not definition.name.strip():
            errors.append(ValidationIssue(type=IssueType.NODE, message="Workflow name is required"))

        if not definition.nodes:
            errors.append(ValidationIssue(type=IssueType.NODE, message="Workflow must have at least one node"))

        for node_id in graph.duplicate_ids:
            errors.append(ValidationIssue(
                type=IssueType.NODE,
                message=f"Duplicate node id {node_id}",
                node_id=node_id,
            ))

        if not graph.start_nodes():
            errors.append(ValidationIssue(
                type=IssueType.LOGIC,
                message="Workflow must have at least one start node (node with no incoming connections)",
            ))

        self._validate_references(definition, graph, errors)

        cycle = graph.find_cycle()
        if cycle:
            errors.append(ValidationIssue(
                type=IssueType.LOGIC,
                message=f"Workflow contains circular dependencies: {' -> '.join(cycle)}",
                node_id=cycle[0],
            ))

        self._collect_warnings(definition, graph, known_types, warnings)

        result = ValidationResult(valid=not errors, errors=errors, warnings=warnings)
        logger.debug(f"Workflow validation completed. Valid: {result.valid}, "
                     f"Errors: {len(result.errors)}, Warnings: {len(result.warnings)}")
        return result

    def ensure_valid(
        self,
        definition: WorkflowDefinition,
        known_types: Optional[Iterable[NodeType]] = None
    ) -> ValidationResult:
        """Validate and raise WorkflowValidationError when the definition has errors."""
        result = self.validate(definition, known_types)
        if not result.valid:
            messages = [issue.message for issue in result.errors]
            raise WorkflowValidationError(
                f"Workflow validation failed: {'; '.join(messages)}",
                validation_errors=messages,
                workflow_id=definition.id,
            )
        return result

    def _validate_references(
        self,
        definition: WorkflowDefinition,
        graph: WorkflowGraph,
        errors: List[ValidationIssue]
    ) -> None:
        """Flag connections whose endpoints do not exist."""
        for connection in definition.connections:
            if connection.source_node_id not in graph.nodes_by_id:
                errors.append(ValidationIssue(
                    type=IssueType.CONNECTION,
                    message=f"Connection source node {connection.source_node_id} does not exist",
                    connection_id=connection.id,
                ))
            if connection.target_node_id not in graph.nodes_by_id:
                errors.append(ValidationIssue(
                    type=IssueType.CONNECTION,
                    message=f"Connection target node {connection.target_node_id} does not exist",
                    connection_id=connection.id,
                ))

    def _collect_warnings(
        self,
        definition: WorkflowDefinition,
        graph: WorkflowGraph,
        known_types: Optional[Iterable[NodeType]],
        warnings: List[ValidationIssue]
    ) -> None:
        if not definition.enabled:
            warnings.append(ValidationIssue(
                type=IssueType.BEST_PRACTICE,
                severity=IssueSeverity.WARNING,
                message="Workflow is disabled",
                suggestion="Enable the workflow before attaching triggers",
            ))

        if len(graph.nodes_by_id) > 1:
            for node_id in graph.isolated_nodes():
                warnings.append(ValidationIssue(
                    type=IssueType.BEST_PRACTICE,
                    severity=IssueSeverity.WARNING,
                    message=f"Node {node_id} is not connected to any other node",
                    node_id=node_id,
                ))

        if known_types is not None:
            known = set(known_types)
            for node in graph.nodes_by_id.values():
                if node.type not in known:
                    warnings.append(ValidationIssue(
                        type=IssueType.LOGIC,
                        severity=IssueSeverity.WARNING,
                        message=f"No executor registered for node type {node.type.value} (node {node.id})",
                        node_id=node.id,
                        suggestion=f"Register an executor for '{node.type.value}' or the node will fail at run time",
                    ))
