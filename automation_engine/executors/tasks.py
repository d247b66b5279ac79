"""Executors delegating to the task-management collaborator."""

from ..core.collaborators import TaskService
from ..core.exceptions import NodeExecutionError
from ..core.executor_registry import NodeExecutor
from ..core.logging import get_logger
from ..models.core import ExecutionLogLevel, TaskReference
from .base import as_dict, as_str, timestamp

logger = get_logger(__name__)

TASK_PRIORITIES = ("low", "medium", "high", "urgent")


class TaskCreateNodeExecutor(NodeExecutor):
    """Creates a task and records a reference to it in the execution context."""

    def __init__(self, tasks: TaskService):
        self.tasks = tasks

    def execute(self, node, context, execution):
        data = as_dict(node.data)
        priority = as_str(data.get("priority"), "medium")
        fields = {
            "title": as_str(data.get("title"), "Untitled task"),
            "description": as_str(data.get("description"), "No description provided"),
            "priority": priority if priority in TASK_PRIORITIES else "medium",
        }
        assigned_to = data.get("assignedTo", data.get("assigned_to"))
        if isinstance(assigned_to, str):
            fields["assigned_to"] = assigned_to

        logger.info(f"Task create node {node.id} creating task: {fields['title']}")
        task = self.tasks.create_task(fields)

        context.tasks.append(TaskReference(id=str(task["id"]), status=str(task.get("status", "todo")), data=task))
        execution.log(ExecutionLogLevel.INFO, f"Created task {task['id']}", node_id=node.id)

        return {"task": task, "created": True}


class TaskUpdateNodeExecutor(NodeExecutor):
    """Applies field updates to an existing task."""

    def __init__(self, tasks: TaskService):
        self.tasks = tasks

    def execute(self, node, context, execution):
        data = as_dict(node.data)
        task_id = as_str(data.get("taskId", data.get("task_id")), "")
        updates = as_dict(data.get("updates"))

        if not task_id:
            raise NodeExecutionError("Task update node requires a task id", node_id=node.id, recoverable=False)

        logger.info(f"Task update node {node.id} updating task: {task_id}")
        task = self.tasks.update_task(task_id, updates)
        execution.log(ExecutionLogLevel.INFO, f"Updated task {task_id}", node_id=node.id,
                      data={"fields": sorted(updates)})

        return {"task_id": task_id, "updates": updates, "task": task, "updated": True, "timestamp": timestamp()}
