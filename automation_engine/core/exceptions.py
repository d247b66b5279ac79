"""Exception hierarchy for the workflow automation engine.

Each subclass fixes its severity, category and default ``recoverable`` flag
as class attributes. Keyword arguments other than the common ones are kept
as ``context`` (ids of the run, node, collaborator... involved) and travel
with the error into logs and API responses.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    VALIDATION = "validation"
    EXECUTION = "execution"
    NETWORK = "network"
    CONFIGURATION = "configuration"
    INTEGRATION = "integration"


class WorkflowEngineError(Exception):
    """Base exception for all workflow engine errors.

    ``recoverable`` tells the retry helpers whether trying the same
    operation again can succeed.
    """

    severity = ErrorSeverity.MEDIUM
    category = ErrorCategory.EXECUTION
    recoverable = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        **context
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or type(self).__name__
        self.details: Dict[str, Any] = dict(details or {})
        if recoverable is not None:
            self.recoverable = recoverable
        self.context: Dict[str, Any] = {key: value for key, value in context.items() if value is not None}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used in structured logs."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": type(self).__name__,
        }

    def add_context(self, **kwargs) -> 'WorkflowEngineError':
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs) -> 'WorkflowEngineError':
        self.details.update(kwargs)
        return self


class WorkflowValidationError(WorkflowEngineError):
    """A workflow definition failed structural validation."""

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, validation_errors: Optional[List[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.validation_errors = list(validation_errors or [])
        if self.validation_errors:
            self.add_details(validation_errors=self.validation_errors)


class NodeExecutionError(WorkflowEngineError):
    """Raised by node executors when a node cannot do its work.

    Recoverable unless the caller says otherwise, so ``retry`` mode
    re-invokes the node.
    """

    severity = ErrorSeverity.HIGH
    recoverable = True


class ExecutorRegistryError(WorkflowEngineError):
    """Unknown node type, missing executor, or conflicting registration."""

    category = ErrorCategory.CONFIGURATION


class ExecutionEngineError(WorkflowEngineError):
    """The engine cannot accept or locate a run."""

    severity = ErrorSeverity.HIGH


class CollaboratorError(WorkflowEngineError):
    """An external collaborator (tasks, notifications, HTTP, scripts) failed."""

    category = ErrorCategory.INTEGRATION
    recoverable = True


class ConfigurationError(WorkflowEngineError):
    severity = ErrorSeverity.HIGH
    category = ErrorCategory.CONFIGURATION


class APIError(WorkflowEngineError):
    """Error raised at the HTTP boundary with the status code to answer with."""

    category = ErrorCategory.NETWORK

    def __init__(self, message: str, status_code: int = 500, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.add_details(status_code=status_code)


def create_error_response(error: WorkflowEngineError) -> Dict[str, Any]:
    """Standard JSON error body for a WorkflowEngineError."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "recoverable": error.recoverable,
            "timestamp": error.timestamp.isoformat(),
        },
        "context": error.context,
    }
