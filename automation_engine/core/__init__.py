"""Core workflow engine components."""

from .exceptions import (
    WorkflowEngineError,
    WorkflowValidationError,
    NodeExecutionError,
    ExecutorRegistryError,
    ExecutionEngineError,
    CollaboratorError,
    ConfigurationError,
    APIError,
)
from .logging import setup_logging, get_logger
from .executor_registry import ExecutorRegistry, NodeExecutor, FunctionExecutor
from .graph_analyzer import GraphAnalyzer, WorkflowGraph
from .execution_store import ExecutionStore

__all__ = [
    "WorkflowEngineError",
    "WorkflowValidationError",
    "NodeExecutionError",
    "ExecutorRegistryError",
    "ExecutionEngineError",
    "CollaboratorError",
    "ConfigurationError",
    "APIError",
    "setup_logging",
    "get_logger",
    "ExecutorRegistry",
    "NodeExecutor",
    "FunctionExecutor",
    "GraphAnalyzer",
    "WorkflowGraph",
    "ExecutionStore",
]
