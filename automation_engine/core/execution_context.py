"""Execution context seeding and lookup helpers."""

from typing import Any, Dict, Mapping, Optional, Tuple

from ..models.core import (
    Environment,
    ExecutionContext,
    ExecutionUser,
    TaskReference,
    WorkflowDefinition,
)

# Dotted field paths must start with one of these
ROOT_NAMESPACES = ("variables", "tasks", "user", "environment", "timestamp")

_MISSING = object()


def node_output_key(node_id: str) -> str:
    """Variable name under which a node's output is published."""
    return f"node_{node_id}_output"


def declared_defaults(definition: WorkflowDefinition) -> Dict[str, Any]:
    """Default values of the definition's declared variables."""
    return {variable.name: variable.default_value for variable in definition.variables}


def build_context(
    definition: WorkflowDefinition,
    trigger_data: Optional[Mapping[str, Any]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environment: Environment = Environment.DEVELOPMENT,
) -> ExecutionContext:
    """
    Seed the execution context for a new run.

    Variables are merged as declared defaults, then trigger data, then the
    caller's ``overrides["variables"]``; later values win. ``overrides`` may
    also carry ``user``, ``environment`` and initial ``tasks``.

    Args:
        definition: Workflow being executed
        trigger_data: Payload that triggered the run
        overrides: Partial context supplied by the caller
        environment: Environment tag used when the caller does not supply one

    Returns:
        A fresh ExecutionContext
    """
    overrides = dict(overrides or {})

    variables = declared_defaults(definition)
    variables.update(trigger_data or {})
    variables.update(overrides.get("variables") or {})

    user = overrides.get("user")
    if user is not None and not isinstance(user, ExecutionUser):
        user = ExecutionUser.model_validate(user)

    tasks = [
        task if isinstance(task, TaskReference) else TaskReference.model_validate(task)
        for task in overrides.get("tasks") or []
    ]

    return ExecutionContext(
        variables=variables,
        tasks=tasks,
        user=user,
        environment=overrides.get("environment") or environment,
    )


def record_node_output(context: ExecutionContext, node_id: str, output: Optional[Dict[str, Any]]) -> None:
    """Publish a completed node's output so downstream nodes can read it."""
    if output:
        context.variables[node_output_key(node_id)] = output


def resolve_field(context: ExecutionContext, path: str) -> Tuple[bool, Any]:
    """
    Resolve a dotted field path against the context.

    The first segment must be one of ``ROOT_NAMESPACES``. Each later segment
    indexes a mapping key, a model attribute, or a list position.

    Returns:
        ``(known_root, value)``; value is None when the root is unknown or any
        segment is missing.
    """
    segments = [segment for segment in path.split(".") if segment]
    if not segments or segments[0] not in ROOT_NAMESPACES:
        return False, None

    value: Any = getattr(context, segments[0])
    for segment in segments[1:]:
        value = _step(value, segment)
        if value is _MISSING:
            return True, None
    return True, value


def _step(value: Any, segment: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(segment, _MISSING)
    if isinstance(value, (list, tuple)):
        if segment.isdigit() and int(segment) < len(value):
            return value[int(segment)]
        return _MISSING
    if hasattr(value, "model_fields") and segment in type(value).model_fields:
        return getattr(value, segment)
    return _MISSING
