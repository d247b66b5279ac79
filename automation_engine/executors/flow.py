"""Control-flow node executors: trigger, condition and delay."""

import math
import threading
from typing import Any, Dict, List, Tuple

from ..core.execution_context import ROOT_NAMESPACES, resolve_field
from ..core.executor_registry import NodeExecutor
from ..core.logging import get_logger
from ..models.core import ExecutionContext, ExecutionLogLevel, WorkflowExecution, WorkflowNode
from .base import as_dict, as_list, as_number, as_str, timestamp

logger = get_logger(__name__)


class TriggerNodeExecutor(NodeExecutor):
    """Pass-through marking the start of a run."""

    def execute(self, node, context, execution):
        logger.debug(f"Trigger node {node.id} executed")
        return {"triggered": True, "timestamp": timestamp()}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def evaluate_operator(field_value: Any, operator: str, expected: Any) -> bool:
    """Evaluate a single comparison; unknown operators are false."""
    if operator == "equals":
        return field_value == expected
    if operator == "not_equals":
        return field_value != expected
    if operator == "contains":
        return isinstance(field_value, str) and isinstance(expected, str) and expected in field_value
    if operator == "greater_than":
        return _is_number(field_value) and _is_number(expected) and field_value > expected
    if operator == "less_than":
        return _is_number(field_value) and _is_number(expected) and field_value < expected
    return False


class ConditionNodeExecutor(NodeExecutor):
    """Evaluates ``(field, operator, value)`` clauses combined with AND or OR.

    The boolean result is reported in the output and published to the
    context like any other node output; it does not prune traversal.
    """

    def execute(self, node: WorkflowNode, context: ExecutionContext, execution: WorkflowExecution) -> Dict[str, Any]:
        data = as_dict(node.data)
        clauses = self._parse_clauses(data.get("conditions"))
        combinator = "or" if data.get("operator") == "or" else "and"

        # OR starts from false so a single true clause decides; no clauses is true
        result = combinator == "and" or not clauses

        for field, operator, expected in clauses:
            known_root, field_value = resolve_field(context, field)
            if not known_root:
                execution.log(
                    ExecutionLogLevel.WARN,
                    f"Field '{field}' does not start with one of {', '.join(ROOT_NAMESPACES)}",
                    node_id=node.id,
                )
            outcome = evaluate_operator(field_value, operator, expected)
            result = (result and outcome) if combinator == "and" else (result or outcome)

        logger.debug(f"Condition node {node.id} evaluated: {result}")
        execution.log(ExecutionLogLevel.INFO, f"Condition evaluated to {result}", node_id=node.id,
                      data={"clauses": len(clauses), "operator": combinator})
        return {"result": result, "conditions": len(clauses)}

    @staticmethod
    def _parse_clauses(raw: Any) -> List[Tuple[str, str, Any]]:
        clauses = []
        for clause in as_list(raw):
            clause = as_dict(clause)
            field, operator = clause.get("field"), clause.get("operator")
            if isinstance(field, str) and isinstance(operator, str):
                clauses.append((field, operator, clause.get("value")))
        return clauses


DELAY_UNITS_MS = {
    "milliseconds": 1,
    "seconds": 1000,
    "minutes": 60 * 1000,
    "hours": 60 * 60 * 1000,
    "days": 24 * 60 * 60 * 1000,
}


# Longest wait a thread can block for, in milliseconds
MAX_DELAY_MS = int(threading.TIMEOUT_MAX * 1000)


def delay_to_ms(duration: float, unit: str) -> int:
    """Convert a duration and unit into milliseconds; unknown units mean milliseconds."""
    delay_ms = duration * DELAY_UNITS_MS.get(unit, 1)
    if math.isnan(delay_ms):
        return 0
    return int(max(0, min(delay_ms, MAX_DELAY_MS)))


class DelayNodeExecutor(NodeExecutor):
    """Pauses its own path; wakes early if the run is cancelled or its timeout elapses."""

    def execute(self, node, context, execution):
        data = as_dict(node.data)
        delay_ms = delay_to_ms(as_number(data.get("duration"), 1000), as_str(data.get("unit"), "milliseconds"))

        logger.debug(f"Delay node {node.id} waiting {delay_ms}ms")
        execution.log(ExecutionLogLevel.INFO, f"Waiting {delay_ms}ms", node_id=node.id)
        remaining = execution.remaining_time
        if remaining is not None and remaining * 1000 < delay_ms:
            execution.log(ExecutionLogLevel.WARN, f"Delay cut short by the run timeout after {int(remaining * 1000)}ms",
                          node_id=node.id)
        interrupted = execution.wait_for_cancel(delay_ms / 1000.0)

        return {"delayed": True, "duration": delay_ms, "interrupted": interrupted}
