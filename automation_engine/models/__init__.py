"""Data models for the workflow automation engine."""

from .core import (
    TERMINAL_STATUSES,
    Environment,
    ErrorHandlingMode,
    ExecutionContext,
    ExecutionError,
    ExecutionLog,
    ExecutionLogLevel,
    ExecutionMetadata,
    ExecutionSource,
    ExecutionStatusEnum,
    ExecutionUser,
    IssueSeverity,
    IssueType,
    LoggingSettings,
    NodeType,
    RetryPolicy,
    TaskReference,
    ValidationIssue,
    ValidationResult,
    WorkflowCategory,
    WorkflowConnection,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowMetadata,
    WorkflowNode,
    WorkflowNodeExecution,
    WorkflowSettings,
    WorkflowVariable,
)

__all__ = [
    "TERMINAL_STATUSES",
    "Environment",
    "ErrorHandlingMode",
    "ExecutionContext",
    "ExecutionError",
    "ExecutionLog",
    "ExecutionLogLevel",
    "ExecutionMetadata",
    "ExecutionSource",
    "ExecutionStatusEnum",
    "ExecutionUser",
    "IssueSeverity",
    "IssueType",
    "LoggingSettings",
    "NodeType",
    "RetryPolicy",
    "TaskReference",
    "ValidationIssue",
    "ValidationResult",
    "WorkflowCategory",
    "WorkflowConnection",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowMetadata",
    "WorkflowNode",
    "WorkflowNodeExecution",
    "WorkflowSettings",
    "WorkflowVariable",
]
