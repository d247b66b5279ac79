"""Interfaces to the external systems node executors delegate to.

Each collaborator is an abstract base class with a default implementation
suitable for local runs and tests: an in-memory task store, a notification
channel that only logs, an HTTP client built on ``requests`` and a
subprocess-backed script sandbox.
"""

import subprocess
import sys
import threading
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from .exceptions import CollaboratorError
from .logging import get_logger

logger = get_logger(__name__)


class TaskService(ABC):
    """Task-management collaborator."""

    @abstractmethod
    def create_task(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create a task and return its stored representation (must include ``id`` and ``status``)."""

    @abstractmethod
    def update_task(self, task_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Apply updates to a task and return its stored representation."""


class InMemoryTaskService(TaskService):
    """Thread-safe task store kept in process memory."""

    def __init__(self):
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def create_task(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        task = {
            "status": "todo",
            **fields,
            "id": f"task_{uuid.uuid4().hex[:12]}",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            self._tasks[task["id"]] = task
        logger.debug(f"Created task {task['id']}: {task.get('title')}")
        return dict(task)

    def update_task(self, task_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise CollaboratorError(
                    f"Task {task_id} not found",
                    collaborator="tasks",
                    operation="update_task",
                    recoverable=False,
                )
            task.update({key: value for key, value in updates.items() if key != "id"})
            task["updated_at"] = datetime.now(timezone.utc).isoformat()
            return dict(task)

    def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            task = self._tasks.get(task_id)
            return dict(task) if task else None


class NotificationService(ABC):
    """Notification collaborator."""

    @abstractmethod
    def send(self, recipients: List[str], message: str, channel: str = "info") -> Dict[str, Any]:
        """Deliver a message to recipients over a named channel."""


class LoggingNotificationService(NotificationService):
    """Records notifications and writes them to the log instead of delivering them."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def send(self, recipients: List[str], message: str, channel: str = "info") -> Dict[str, Any]:
        notification = {
            "id": f"notification_{uuid.uuid4().hex[:12]}",
            "recipients": list(recipients),
            "message": message,
            "channel": channel,
        }
        with self._lock:
            self.sent.append(notification)
        logger.info(f"Notification [{channel}] to {len(recipients)} recipient(s): {message}")
        return {"id": notification["id"], "delivered": len(recipients)}


class HttpClient(ABC):
    """HTTP collaborator used by webhook nodes."""

    @abstractmethod
    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        timeout: float = 30.0
    ) -> Dict[str, Any]:
        """Perform a request and return ``{"status", "body", "headers"}``."""


class RequestsHttpClient(HttpClient):
    """HttpClient backed by a shared ``requests.Session``."""

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()

    def request(self, method, url, headers=None, body=None, timeout=30.0):
        kwargs: Dict[str, Any] = {"headers": headers or {}, "timeout": timeout}
        if isinstance(body, (dict, list)):
            kwargs["json"] = body
        elif body is not None:
            kwargs["data"] = body

        try:
            response = self.session.request(method.upper(), url, **kwargs)
        except requests.Timeout:
            raise CollaboratorError(
                f"{method.upper()} {url} timed out after {timeout}s",
                collaborator="http",
                operation="request",
            )
        except requests.RequestException as e:
            raise CollaboratorError(
                f"{method.upper()} {url} failed: {e}",
                collaborator="http",
                operation="request",
            )

        try:
            response_body: Any = response.json()
        except ValueError:
            response_body = response.text

        return {
            "status": response.status_code,
            "body": response_body,
            "headers": dict(response.headers),
        }


class ScriptSandbox(ABC):
    """Script-execution collaborator."""

    @abstractmethod
    def run(self, script: str, language: str, timeout_ms: int) -> Dict[str, Any]:
        """Execute source and return ``{"output", "exit_code", "execution_time"}``."""


class SubprocessScriptSandbox(ScriptSandbox):
    """Runs scripts in a child process with a hard timeout.

    Only isolates at the process level; deployments that run untrusted
    scripts should provide a container-backed ScriptSandbox instead.
    """

    DEFAULT_INTERPRETERS = {
        "python": [sys.executable, "-c"],
        "shell": ["/bin/sh", "-c"],
        "bash": ["bash", "-c"],
        "javascript": ["node", "-e"],
    }

    def __init__(self, interpreters: Optional[Dict[str, List[str]]] = None):
        self.interpreters = dict(self.DEFAULT_INTERPRETERS)
        if interpreters:
            self.interpreters.update(interpreters)

    def run(self, script: str, language: str, timeout_ms: int) -> Dict[str, Any]:
        command = self.interpreters.get(language.lower())
        if command is None:
            raise CollaboratorError(
                f"Unsupported script language: {language}",
                collaborator="script",
                operation="run",
                recoverable=False,
            )

        start = time.monotonic()
        try:
            completed = subprocess.run(
                [*command, script],
                capture_output=True,
                text=True,
                timeout=timeout_ms / 1000.0,
            )
        except subprocess.TimeoutExpired:
            raise CollaboratorError(
                f"Script timed out after {timeout_ms}ms",
                collaborator="script",
                operation="run",
            )
        except OSError as e:
            raise CollaboratorError(
                f"Cannot start {language} interpreter: {e}",
                collaborator="script",
                operation="run",
                recoverable=False,
            )

        return {
            "output": completed.stdout,
            "error_output": completed.stderr,
            "exit_code": completed.returncode,
            "execution_time": int((time.monotonic() - start) * 1000),
        }
