"""Registry mapping node types to their executors."""

import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Union

from ..models.core import ExecutionContext, NodeType, WorkflowExecution, WorkflowNode
from .exceptions import ExecutorRegistryError
from .logging import get_logger

logger = get_logger(__name__)


class NodeExecutor(ABC):
    """Executes one kind of workflow node.

    Executors may read and extend ``context.variables`` and append to
    ``context.tasks``. They must not touch other nodes' execution records;
    anything they raise is caught at the node boundary by the engine.
    """

    @abstractmethod
    def execute(
        self,
        node: WorkflowNode,
        context: ExecutionContext,
        execution: WorkflowExecution
    ) -> Optional[Dict[str, Any]]:
        """Run the node and return its output payload."""


ExecutorFunction = Callable[[WorkflowNode, ExecutionContext, WorkflowExecution], Optional[Dict[str, Any]]]


class FunctionExecutor(NodeExecutor):
    """Adapts a plain function to the NodeExecutor interface."""

    def __init__(self, function: ExecutorFunction):
        self.function = function

    def execute(self, node, context, execution):
        return self.function(node, context, execution)

    def __repr__(self) -> str:
        return f"FunctionExecutor({getattr(self.function, '__name__', self.function)!r})"


class ExecutorRegistry:
    """Registry binding each NodeType to exactly one executor."""

    def __init__(self):
        self._executors: Dict[NodeType, NodeExecutor] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _coerce_type(node_type: Union[NodeType, str]) -> NodeType:
        try:
            return NodeType(node_type)
        except ValueError:
            raise ExecutorRegistryError(f"Unknown node type '{node_type}'", node_type=str(node_type))

    def register(
        self,
        node_type: Union[NodeType, str],
        executor: Union[NodeExecutor, ExecutorFunction],
        replace: bool = False
    ) -> None:
        """Bind an executor to a node type.

        Args:
            node_type: Node type the executor handles
            executor: NodeExecutor instance or plain function with the same signature
            replace: Allow replacing an executor that is already bound

        Raises:
            ExecutorRegistryError: If the type is unknown, already bound, or the executor is invalid
        """
        node_type = self._coerce_type(node_type)

        if not isinstance(executor, NodeExecutor):
            if not callable(executor):
                raise ExecutorRegistryError(
                    f"Executor for '{node_type.value}' must be a NodeExecutor or callable",
                    node_type=node_type.value,
                    operation="register",
                )
            executor = FunctionExecutor(executor)

        with self._lock:
            if node_type in self._executors and not replace:
                raise ExecutorRegistryError(
                    f"Executor for node type '{node_type.value}' is already registered",
                    node_type=node_type.value,
                    operation="register",
                )
            self._executors[node_type] = executor

        logger.debug(f"Registered executor {executor!r} for node type '{node_type.value}'")

    def unregister(self, node_type: Union[NodeType, str]) -> bool:
        """Remove the executor for a node type; False if none was bound."""
        node_type = self._coerce_type(node_type)
        with self._lock:
            removed = self._executors.pop(node_type, None)
        if removed is not None:
            logger.info(f"Unregistered executor for node type '{node_type.value}'")
        return removed is not None

    def get(self, node_type: Union[NodeType, str]) -> NodeExecutor:
        """Return the executor bound to a node type.

        Raises:
            ExecutorRegistryError: If no executor is registered for the type
        """
        node_type = self._coerce_type(node_type)
        with self._lock:
            executor = self._executors.get(node_type)
        if executor is None:
            raise ExecutorRegistryError(
                f"No executor found for node type: {node_type.value}",
                node_type=node_type.value,
                operation="get",
            )
        return executor

    def has(self, node_type: Union[NodeType, str]) -> bool:
        try:
            node_type = NodeType(node_type)
        except ValueError:
            return False
        with self._lock:
            return node_type in self._executors

    def registered_types(self) -> List[NodeType]:
        with self._lock:
            return list(self._executors)

    def unsupported_types(self) -> List[NodeType]:
        """Node types of the closed enumeration that have no executor bound."""
        with self._lock:
            return [node_type for node_type in NodeType if node_type not in self._executors]

    def list_executors(self) -> Dict[str, str]:
        """Map of node type value to executor class name."""
        with self._lock:
            return {node_type.value: type(executor).__name__ for node_type, executor in self._executors.items()}
