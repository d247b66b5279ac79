"""Pytest configuration and fixtures."""

from typing import Any, Dict, List, Optional

import pytest

from automation_engine.config import get_testing_config
from automation_engine.core.collaborators import (
    HttpClient,
    InMemoryTaskService,
    LoggingNotificationService,
    ScriptSandbox,
)
from automation_engine.core.exceptions import CollaboratorError
from automation_engine.core.execution_engine import ExecutionEngine
from automation_engine.core.execution_store import ExecutionStore
from automation_engine.executors import build_default_registry
from automation_engine.models.core import (
    WorkflowConnection,
    WorkflowDefinition,
    WorkflowNode,
    WorkflowSettings,
)


class FakeHttpClient(HttpClient):
    """Records requests and answers with a canned response."""

    def __init__(self, status: int = 200, body: Any = None, error: Optional[Exception] = None):
        self.status = status
        self.body = body if body is not None else {"ok": True}
        self.error = error
        self.requests: List[Dict[str, Any]] = []

    def request(self, method, url, headers=None, body=None, timeout=30.0):
        self.requests.append({"method": method, "url": url, "headers": headers, "body": body, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return {"status": self.status, "body": self.body, "headers": {}}


class FakeScriptSandbox(ScriptSandbox):
    """Returns a fixed result without spawning a process."""

    def __init__(self, exit_code: int = 0, output: str = "done", fail_with: Optional[str] = None):
        self.exit_code = exit_code
        self.output = output
        self.fail_with = fail_with
        self.runs: List[Dict[str, Any]] = []

    def run(self, script, language, timeout_ms):
        self.runs.append({"script": script, "language": language, "timeout_ms": timeout_ms})
        if self.fail_with:
            raise CollaboratorError(self.fail_with, collaborator="script", operation="run")
        return {"output": self.output, "error_output": "", "exit_code": self.exit_code, "execution_time": 1}


@pytest.fixture
def config():
    """Testing configuration with zero retry delays."""
    return get_testing_config()


@pytest.fixture
def task_service():
    return InMemoryTaskService()


@pytest.fixture
def notification_service():
    return LoggingNotificationService()


@pytest.fixture
def http_client():
    return FakeHttpClient()


@pytest.fixture
def script_sandbox():
    return FakeScriptSandbox()


@pytest.fixture
def registry(task_service, notification_service, http_client, script_sandbox):
    """Registry with every built-in executor bound to fake collaborators."""
    return build_default_registry(
        task_service=task_service,
        notification_service=notification_service,
        http_client=http_client,
        script_sandbox=script_sandbox,
        webhook_timeout=2.0,
        script_timeout_ms=5000,
    )


@pytest.fixture
def execution_engine(registry, config):
    """Create an ExecutionEngine instance for testing."""
    engine = ExecutionEngine(registry=registry, store=ExecutionStore(), config=config)
    yield engine
    engine.shutdown()


@pytest.fixture
def make_workflow():
    """Build a WorkflowDefinition from ``(id, type, data)`` tuples and ``(source, target)`` pairs."""

    def _make(nodes, edges=(), name="Test workflow", variables=None, **settings):
        return WorkflowDefinition(
            id="wf-test",
            name=name,
            nodes=[
                WorkflowNode(id=node[0], type=node[1], data=node[2] if len(node) > 2 else {})
                for node in nodes
            ],
            connections=[
                WorkflowConnection(id=f"{source}-{target}", source_node_id=source, target_node_id=target)
                for source, target in edges
            ],
            variables=variables or [],
            settings=WorkflowSettings(**settings),
        )

    return _make
