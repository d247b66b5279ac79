"""Built-in node executors for the workflow automation engine."""

from typing import Optional

from ..core.collaborators import (
    HttpClient,
    InMemoryTaskService,
    LoggingNotificationService,
    NotificationService,
    RequestsHttpClient,
    ScriptSandbox,
    SubprocessScriptSandbox,
    TaskService,
)
from ..core.executor_registry import ExecutorRegistry
from ..models.core import NodeType
from .flow import ConditionNodeExecutor, DelayNodeExecutor, TriggerNodeExecutor
from .integrations import (
    ActionHandler,
    ActionNodeExecutor,
    NotificationNodeExecutor,
    ScriptNodeExecutor,
    WebhookNodeExecutor,
)
from .tasks import TaskCreateNodeExecutor, TaskUpdateNodeExecutor


def build_default_registry(
    task_service: Optional[TaskService] = None,
    notification_service: Optional[NotificationService] = None,
    http_client: Optional[HttpClient] = None,
    script_sandbox: Optional[ScriptSandbox] = None,
    action_handler: Optional[ActionHandler] = None,
    webhook_timeout: float = 30.0,
    script_timeout_ms: int = 30000,
) -> ExecutorRegistry:
    """Create a registry with every built-in executor bound.

    Collaborators default to the in-process implementations.
    """
    task_service = task_service or InMemoryTaskService()

    registry = ExecutorRegistry()
    registry.register(NodeType.TRIGGER, TriggerNodeExecutor())
    registry.register(NodeType.CONDITION, ConditionNodeExecutor())
    registry.register(NodeType.ACTION, ActionNodeExecutor(action_handler))
    registry.register(NodeType.DELAY, DelayNodeExecutor())
    registry.register(NodeType.NOTIFICATION, NotificationNodeExecutor(notification_service or LoggingNotificationService()))
    registry.register(NodeType.TASK_CREATE, TaskCreateNodeExecutor(task_service))
    registry.register(NodeType.TASK_UPDATE, TaskUpdateNodeExecutor(task_service))
    registry.register(NodeType.WEBHOOK, WebhookNodeExecutor(http_client or RequestsHttpClient(), webhook_timeout))
    registry.register(NodeType.SCRIPT, ScriptNodeExecutor(script_sandbox or SubprocessScriptSandbox(), script_timeout_ms))
    return registry


__all__ = [
    "ActionHandler",
    "ActionNodeExecutor",
    "ConditionNodeExecutor",
    "DelayNodeExecutor",
    "NotificationNodeExecutor",
    "ScriptNodeExecutor",
    "TaskCreateNodeExecutor",
    "TaskUpdateNodeExecutor",
    "TriggerNodeExecutor",
    "WebhookNodeExecutor",
    "build_default_registry",
]
