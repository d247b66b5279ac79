"""Executors delegating to external collaborators: action, notification, webhook and script."""

from typing import Any, Callable, Dict, Optional

from ..core.collaborators import HttpClient, NotificationService, ScriptSandbox
from ..core.exceptions import NodeExecutionError, WorkflowEngineError
from ..core.executor_registry import NodeExecutor
from ..core.logging import get_logger
from ..models.core import ExecutionContext, ExecutionLogLevel
from .base import as_dict, as_list, as_number, as_str, timestamp

logger = get_logger(__name__)

# (action_type, parameters, context) -> optional result payload
ActionHandler = Callable[[str, Dict[str, Any], ExecutionContext], Optional[Dict[str, Any]]]


class ActionNodeExecutor(NodeExecutor):
    """Dispatches an action type and parameter bag to the automation-rule handler.

    Without a handler the node only echoes and logs the action.
    """

    def __init__(self, handler: Optional[ActionHandler] = None):
        self.handler = handler

    def execute(self, node, context, execution):
        data = as_dict(node.data)
        action_type = as_str(data.get("actionType", data.get("action_type")), "unknown_action")
        parameters = as_dict(data.get("parameters"))

        logger.info(f"Action node {node.id} executing: {action_type}")
        execution.log(ExecutionLogLevel.INFO, f"Executing action {action_type}", node_id=node.id,
                      data={"parameters": parameters})

        output: Dict[str, Any] = {
            "action_type": action_type,
            "parameters": parameters,
            "executed": True,
            "timestamp": timestamp(),
        }
        if self.handler is not None:
            output["result"] = self.handler(action_type, parameters, context)
        return output


class NotificationNodeExecutor(NodeExecutor):
    """Sends a message to named recipients through the notification collaborator."""

    def __init__(self, notifications: NotificationService):
        self.notifications = notifications

    def execute(self, node, context, execution):
        data = as_dict(node.data)
        recipients = [str(recipient) for recipient in as_list(data.get("recipients"))]
        message = as_str(data.get("message"), "No message provided")
        channel = as_str(data.get("type"), "info")

        if not recipients:
            raise NodeExecutionError("Notification node has no recipients", node_id=node.id, recoverable=False)

        logger.info(f"Notification node {node.id} sending to {len(recipients)} recipients")
        receipt = self.notifications.send(recipients, message, channel)
        execution.log(ExecutionLogLevel.INFO, f"Notification sent to {len(recipients)} recipient(s)", node_id=node.id)

        return {
            "recipients": recipients,
            "message": message,
            "type": channel,
            "sent": True,
            "receipt": receipt,
            "timestamp": timestamp(),
        }


class WebhookNodeExecutor(NodeExecutor):
    """Calls an HTTP endpoint; failures are reported in the output, never raised.

    A node may shorten the request timeout but never extend it past ``default_timeout``.
    """

    def __init__(self, http: HttpClient, default_timeout: float = 30.0):
        self.http = http
        self.default_timeout = default_timeout

    def execute(self, node, context, execution):
        data = as_dict(node.data)
        url = as_str(data.get("url"), "")
        method = as_str(data.get("method"), "POST").upper()
        headers = {str(key): str(value) for key, value in as_dict(data.get("headers")).items()}
        body = data.get("body")
        timeout = as_number(data.get("timeout"), self.default_timeout)
        timeout = max(0.001, min(timeout, self.default_timeout))

        logger.info(f"Webhook node {node.id} calling {method} {url}")
        output: Dict[str, Any] = {"url": url, "method": method, "timestamp": timestamp()}

        if not url:
            output.update(success=False, error="Webhook URL is required")
            execution.log(ExecutionLogLevel.ERROR, "Webhook URL is required", node_id=node.id)
            return output

        try:
            response = self.http.request(method, url, headers=headers, body=body, timeout=timeout)
        except Exception as e:
            logger.warning(f"Webhook node {node.id} failed: {e}")
            execution.log(ExecutionLogLevel.ERROR, f"Webhook call failed: {e}", node_id=node.id)
            output.update(success=False, error=str(e))
            return output

        status = response.get("status", 0)
        output.update(response=response, success=200 <= status < 400)
        execution.log(ExecutionLogLevel.INFO, f"Webhook responded with {status}", node_id=node.id)
        return output


class ScriptNodeExecutor(NodeExecutor):
    """Runs source in the script sandbox with a bounded timeout."""

    def __init__(self, sandbox: ScriptSandbox, default_timeout_ms: int = 30000):
        self.sandbox = sandbox
        self.default_timeout_ms = default_timeout_ms

    def execute(self, node, context, execution):
        data = as_dict(node.data)
        script = as_str(data.get("script"), "")
        language = as_str(data.get("language"), "python")
        timeout_ms = int(as_number(data.get("timeout"), self.default_timeout_ms))
        timeout_ms = max(1, min(timeout_ms, self.default_timeout_ms))

        logger.info(f"Script node {node.id} executing {language} script")
        output: Dict[str, Any] = {"script": script, "language": language, "timestamp": timestamp()}

        try:
            result = self.sandbox.run(script, language, timeout_ms)
        except WorkflowEngineError as e:
            execution.log(ExecutionLogLevel.ERROR, f"Script failed: {e.message}", node_id=node.id)
            output.update(success=False, error=e.message)
            return output

        output.update(result=result, success=result.get("exit_code") == 0)
        execution.log(ExecutionLogLevel.INFO, f"Script exited with code {result.get('exit_code')}",
                      node_id=node.id)
        return output
