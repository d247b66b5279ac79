"""Core Pydantic models for the workflow automation engine."""

import threading
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def elapsed_ms(started_at: datetime, completed_at: datetime) -> int:
    """Milliseconds between two timestamps."""
    return int((completed_at - started_at).total_seconds() * 1000)


class CamelModel(BaseModel):
    """Base model accepting both snake_case names and camelCase wire aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NodeType(str, Enum):
    """Closed set of node kinds a workflow graph may contain."""
    TRIGGER = "trigger"
    CONDITION = "condition"
    ACTION = "action"
    DELAY = "delay"
    BRANCH = "branch"
    MERGE = "merge"
    NOTIFICATION = "notification"
    TASK_CREATE = "task_create"
    TASK_UPDATE = "task_update"
    TASK_ASSIGN = "task_assign"
    WEBHOOK = "webhook"
    SCRIPT = "script"


class WorkflowCategory(str, Enum):
    TASK_MANAGEMENT = "task_management"
    APPROVAL = "approval"
    NOTIFICATION = "notification"
    INTEGRATION = "integration"
    SCHEDULING = "scheduling"
    CUSTOM = "custom"


class ErrorHandlingMode(str, Enum):
    """What a run does when one of its nodes fails."""
    STOP = "stop"
    CONTINUE = "continue"
    RETRY = "retry"


class ExecutionStatusEnum(str, Enum):
    """Enumeration of run and node execution statuses."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PAUSED = "paused"


TERMINAL_STATUSES = frozenset({
    ExecutionStatusEnum.COMPLETED,
    ExecutionStatusEnum.FAILED,
    ExecutionStatusEnum.CANCELLED,
})


class ExecutionLogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


LOG_LEVEL_ORDER = {
    ExecutionLogLevel.DEBUG: 10,
    ExecutionLogLevel.INFO: 20,
    ExecutionLogLevel.WARN: 30,
    ExecutionLogLevel.ERROR: 40,
}


class VariableType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"


class VariableScope(str, Enum):
    GLOBAL = "global"
    LOCAL = "local"
    SESSION = "session"


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class ExecutionSource(str, Enum):
    MANUAL = "manual"
    API = "api"
    SCHEDULED = "scheduled"
    EVENT = "event"


class IssueType(str, Enum):
    """Category of a validation finding."""
    CONNECTION = "connection"
    NODE = "node"
    VARIABLE = "variable"
    LOGIC = "logic"
    PERFORMANCE = "performance"
    BEST_PRACTICE = "best_practice"


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


# ---------------------------------------------------------------------------
# Definition model
# ---------------------------------------------------------------------------

class NodePosition(CamelModel):
    """Editor canvas position; ignored by the engine."""
    x: float = 0.0
    y: float = 0.0


class WorkflowNode(CamelModel):
    """A typed unit of work in a workflow graph."""
    id: str = Field(..., description="Unique identifier for the node")
    type: NodeType = Field(..., description="Node kind, selects the executor")
    data: Dict[str, Any] = Field(default_factory=dict, description="Payload interpreted per node type")
    position: Optional[NodePosition] = Field(None, description="Editor-only canvas position")
    config: Optional[Dict[str, Any]] = Field(None, description="Editor-only port and parameter metadata")

    @field_validator('id')
    @classmethod
    def validate_id(cls, node_id):
        """Ensure node ID is not blank."""
        if not node_id or not node_id.strip():
            raise ValueError("Node ID cannot be empty")
        return node_id.strip()


class WorkflowConnection(CamelModel):
    """Directed edge from one node's output to another's input."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_node_id: str = Field(..., description="Source node ID")
    target_node_id: str = Field(..., description="Target node ID")
    source_port_id: Optional[str] = Field(None, description="Editor-only source port")
    target_port_id: Optional[str] = Field(None, description="Editor-only target port")

    @field_validator('source_node_id', 'target_node_id')
    @classmethod
    def validate_node_ids(cls, node_id):
        if not node_id or not node_id.strip():
            raise ValueError("Node ID cannot be empty")
        return node_id.strip()


class WorkflowVariable(CamelModel):
    """Declared workflow variable with its default value."""
    name: str
    type: VariableType = VariableType.STRING
    description: Optional[str] = None
    default_value: Any = None
    scope: VariableScope = VariableScope.GLOBAL


class RetryPolicy(CamelModel):
    """Per-definition retry policy, enacted when error handling is ``retry``."""
    max_attempts: int = Field(3, ge=1, description="Total attempts including the first one")
    initial_delay: float = Field(1.0, ge=0, description="Delay in seconds before the first retry")
    backoff_multiplier: float = Field(2.0, ge=1.0, description="Delay growth factor between retries")
    max_delay: float = Field(60.0, ge=0, description="Upper bound for a single retry delay in seconds")


class LoggingSettings(CamelModel):
    """Controls which entries end up in node execution logs."""
    enabled: bool = True
    level: ExecutionLogLevel = ExecutionLogLevel.INFO
    include_data: bool = False


class WorkflowSettings(CamelModel):
    timeout: Optional[float] = Field(None, gt=0, description="Run timeout in seconds")
    retry_policy: Optional[RetryPolicy] = None
    error_handling: ErrorHandlingMode = ErrorHandlingMode.STOP
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


class WorkflowExample(CamelModel):
    name: str
    description: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)


class WorkflowMetadata(CamelModel):
    tags: List[str] = Field(default_factory=list)
    author: str = ""
    documentation: Optional[str] = None
    examples: List[WorkflowExample] = Field(default_factory=list)


class WorkflowDefinition(CamelModel):
    """Complete definition of an automation workflow."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field("", description="Human readable workflow name")
    description: str = ""
    version: str = "1.0.0"
    category: WorkflowCategory = WorkflowCategory.CUSTOM
    nodes: List[WorkflowNode] = Field(default_factory=list)
    connections: List[WorkflowConnection] = Field(default_factory=list)
    variables: List[WorkflowVariable] = Field(default_factory=list)
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)
    metadata: WorkflowMetadata = Field(default_factory=WorkflowMetadata)
    enabled: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    created_by: str = "system"
    updated_by: str = "system"

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        """Return the first node with the given id, if any."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


class ValidationIssue(CamelModel):
    """A single validation error or warning."""
    type: IssueType
    message: str
    severity: IssueSeverity = IssueSeverity.ERROR
    node_id: Optional[str] = None
    connection_id: Optional[str] = None
    suggestion: Optional[str] = None


class ValidationResult(CamelModel):
    """Result of workflow validation."""
    valid: bool = Field(..., description="Whether the workflow can be executed")
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Execution model
# ---------------------------------------------------------------------------

class TaskReference(CamelModel):
    """A task touched during a run, recorded for reporting only."""
    id: str
    status: str
    data: Dict[str, Any] = Field(default_factory=dict)


class ExecutionUser(CamelModel):
    id: str
    username: str
    role: str = "member"


class ExecutionContext(CamelModel):
    """Mutable variable and task state threaded through one run."""
    variables: Dict[str, Any] = Field(default_factory=dict)
    tasks: List[TaskReference] = Field(default_factory=list)
    user: Optional[ExecutionUser] = None
    timestamp: datetime = Field(default_factory=utcnow)
    environment: Environment = Environment.DEVELOPMENT


class ExecutionLog(CamelModel):
    timestamp: datetime = Field(default_factory=utcnow)
    level: ExecutionLogLevel
    message: str
    data: Optional[Dict[str, Any]] = None
    node_id: Optional[str] = None


class ExecutionError(CamelModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    stack: Optional[str] = None
    node_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class ExecutionMetadata(CamelModel):
    triggered_by: str = "system"
    source: ExecutionSource = ExecutionSource.EVENT
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None


class WorkflowNodeExecution(CamelModel):
    """Execution record of a single node within a run."""
    node_id: str
    node_type: Optional[NodeType] = None
    status: ExecutionStatusEnum = ExecutionStatusEnum.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration: Optional[int] = Field(None, description="Duration in milliseconds")
    attempts: int = 0
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    error: Optional[ExecutionError] = None
    logs: List[ExecutionLog] = Field(default_factory=list)

    def finish(self, status: ExecutionStatusEnum, output: Optional[Dict[str, Any]] = None,
               error: Optional[ExecutionError] = None) -> None:
        self.status = status
        self.completed_at = utcnow()
        self.duration = elapsed_ms(self.started_at, self.completed_at)
        if output is not None:
            self.output = output
        if error is not None:
            self.error = error


class WorkflowExecution(CamelModel):
    """Run record of one workflow invocation.

    Status transitions go through :meth:`finish` and :meth:`cancel`, which
    share a lock so a run that was cancelled from another thread is never
    reported as completed afterwards.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    workflow_version: str
    status: ExecutionStatusEnum = ExecutionStatusEnum.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration: Optional[int] = Field(None, description="Duration in milliseconds")
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    context: ExecutionContext = Field(default_factory=ExecutionContext)
    nodes: List[WorkflowNodeExecution] = Field(default_factory=list)
    error: Optional[ExecutionError] = None
    result: Optional[Dict[str, Any]] = None
    metadata: ExecutionMetadata = Field(default_factory=ExecutionMetadata)

    _state_lock: Any = PrivateAttr(default_factory=threading.RLock)
    _cancel_event: threading.Event = PrivateAttr(default_factory=threading.Event)
    _record_index: Dict[str, int] = PrivateAttr(default_factory=dict)
    _log_settings: LoggingSettings = PrivateAttr(default_factory=LoggingSettings)
    _deadline: Optional[float] = PrivateAttr(default=None)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def remaining_time(self) -> Optional[float]:
        """Seconds left before the run timeout, or None when the run has none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def log_settings(self) -> LoggingSettings:
        return self._log_settings

    def configure_logging(self, settings: LoggingSettings) -> None:
        self._log_settings = settings

    def set_deadline(self, seconds: Optional[float]) -> None:
        """Start the run timeout clock; a falsy value clears it."""
        self._deadline = time.monotonic() + seconds if seconds else None

    def mark_running(self) -> bool:
        """Move a pending run to running; False if it was already cancelled."""
        with self._state_lock:
            if self.status != ExecutionStatusEnum.PENDING:
                return False
            self.status = ExecutionStatusEnum.RUNNING
            self.started_at = utcnow()
            return True

    def finish(self, status: ExecutionStatusEnum, error: Optional[ExecutionError] = None,
               result: Optional[Dict[str, Any]] = None) -> bool:
        """Move the run to a terminal status unless it already reached one."""
        with self._state_lock:
            if self.is_terminal:
                return False
            self.status = status
            self.completed_at = utcnow()
            self.duration = elapsed_ms(self.started_at, self.completed_at)
            if error is not None:
                self.error = error
            if result is not None:
                self.result = result
            return True

    def cancel(self) -> bool:
        """Cooperatively cancel the run. Returns False for terminal runs."""
        with self._state_lock:
            if not self.finish(ExecutionStatusEnum.CANCELLED):
                return False
            self._cancel_event.set()
            return True

    def wait_for_cancel(self, seconds: float) -> bool:
        """Sleep up to ``seconds``, never past the run deadline.

        Returns True as soon as the run is cancelled.
        """
        end = time.monotonic() + max(seconds, 0)
        if self._deadline is not None:
            end = min(end, self._deadline)
        while True:
            left = end - time.monotonic()
            if left <= 0:
                return self.cancel_requested
            if self._cancel_event.wait(min(left, threading.TIMEOUT_MAX)):
                return True

    def add_node_record(self, record: WorkflowNodeExecution) -> int:
        """Append a node record and index it by node id."""
        self.nodes.append(record)
        index = len(self.nodes) - 1
        self._record_index[record.node_id] = index
        return index

    def get_node_record(self, node_id: str) -> Optional[WorkflowNodeExecution]:
        index = self._record_index.get(node_id)
        if index is None:
            return None
        return self.nodes[index]

    def log(self, level: ExecutionLogLevel, message: str, node_id: Optional[str] = None,
            data: Optional[Dict[str, Any]] = None) -> Optional[ExecutionLog]:
        """Append a log entry to a node record, honouring the workflow logging settings.

        Error entries are always kept; other levels are filtered by the
        configured threshold and dropped when logging is disabled.
        """
        settings = self._log_settings
        if level != ExecutionLogLevel.ERROR:
            if not settings.enabled or LOG_LEVEL_ORDER[level] < LOG_LEVEL_ORDER[settings.level]:
                return None
        entry = ExecutionLog(
            level=level,
            message=message,
            node_id=node_id,
            data=data if settings.include_data else None,
        )
        record = self.get_node_record(node_id) if node_id else None
        if record is not None:
            record.logs.append(entry)
        return entry
