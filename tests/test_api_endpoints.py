"""Tests for the REST API."""

import pytest
from fastapi.testclient import TestClient

from automation_engine.core.exceptions import (
    APIError,
    ConfigurationError,
    ExecutionEngineError,
    WorkflowValidationError,
)
from automation_engine.core.middleware import status_code_for
from automation_engine.main import create_app


WORKFLOW = {
    "id": "wf-api",
    "name": "API workflow",
    "nodes": [
        {"id": "a", "type": "trigger"},
        {"id": "b", "type": "action", "data": {"actionType": "noop"}},
    ],
    "connections": [{"sourceNodeId": "a", "targetNodeId": "b"}],
}

CYCLIC_WORKFLOW = {
    "id": "wf-cycle",
    "name": "Cyclic workflow",
    "nodes": [{"id": "a", "type": "action"}, {"id": "b", "type": "action"}],
    "connections": [
        {"sourceNodeId": "a", "targetNodeId": "b"},
        {"sourceNodeId": "b", "targetNodeId": "a"},
    ],
}


@pytest.fixture
def client(execution_engine, config):
    """Create a test client bound to the test engine."""
    with TestClient(create_app(engine=execution_engine, config=config)) as test_client:
        yield test_client


class TestWorkflowEndpoints:
    """Test validation and execution endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Request-ID" in response.headers

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"

    def test_validate(self, client):
        response = client.post("/api/v1/workflows/validate", json=WORKFLOW)

        assert response.status_code == 200
        assert response.json()["valid"] is True

    def test_validate_reports_errors(self, client):
        response = client.post("/api/v1/workflows/validate", json=CYCLIC_WORKFLOW)

        body = response.json()
        assert body["valid"] is False
        assert any("circular" in error["message"] for error in body["errors"])

    def test_execute(self, client):
        response = client.post("/api/v1/workflows/execute", json={"workflow": WORKFLOW, "triggerData": {"x": 1}})

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "completed"
        assert body["workflowId"] == "wf-api"
        assert [node["nodeId"] for node in body["nodes"]] == ["a", "b"]
        assert body["context"]["variables"]["x"] == 1
        assert body["metadata"]["source"] == "api"

    def test_execute_invalid_workflow_returns_failed_record(self, client):
        response = client.post("/api/v1/workflows/execute", json={"workflow": CYCLIC_WORKFLOW})

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "failed"
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["nodes"] == []

    def test_malformed_definition_is_rejected(self, client):
        response = client.post("/api/v1/workflows/execute", json={"workflow": {"nodes": [{"id": "a", "type": "teleport"}]}})

        assert response.status_code == 422


class TestExecutionEndpoints:
    """Test background runs, lookup and cancellation."""

    def test_start_and_get(self, client, execution_engine):
        response = client.post("/api/v1/workflows/start", json={"workflow": WORKFLOW})

        assert response.status_code == 202
        execution_id = response.json()["executionId"]
        execution_engine.wait_for_execution(execution_id, timeout=5)

        response = client.get(f"/api/v1/executions/{execution_id}")
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

    def test_start_invalid_workflow(self, client):
        response = client.post("/api/v1/workflows/start", json={"workflow": CYCLIC_WORKFLOW})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "WorkflowValidationError"

    def test_list_executions(self, client):
        client.post("/api/v1/workflows/execute", json={"workflow": WORKFLOW})
        client.post("/api/v1/workflows/execute", json={"workflow": CYCLIC_WORKFLOW})

        assert len(client.get("/api/v1/executions").json()) == 2
        filtered = client.get("/api/v1/executions", params={"workflow_id": "wf-cycle"}).json()
        assert [execution["workflowId"] for execution in filtered] == ["wf-cycle"]

    def test_get_unknown_execution(self, client):
        response = client.get("/api/v1/executions/missing")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "ExecutionNotFound"

    def test_cancel_finished_execution(self, client):
        execution_id = client.post("/api/v1/workflows/execute", json={"workflow": WORKFLOW}).json()["id"]

        response = client.post(f"/api/v1/executions/{execution_id}/cancel")

        assert response.status_code == 200
        assert response.json()["cancelled"] is False
        assert response.json()["status"] == "completed"

    def test_cancel_unknown_execution(self, client):
        response = client.post("/api/v1/executions/missing/cancel")

        assert response.status_code == 404


class TestErrorStatusMapping:
    """Test the HTTP status chosen for engine errors escaping a route."""

    def test_api_error_keeps_its_status(self):
        assert status_code_for(APIError("gone", status_code=410)) == 410

    def test_validation_error_is_bad_request(self):
        assert status_code_for(WorkflowValidationError("bad", validation_errors=["x"])) == 400

    def test_engine_errors(self):
        assert status_code_for(ExecutionEngineError("Execution abc not found")) == 404
        assert status_code_for(ExecutionEngineError("Execution engine is shut down")) == 503

    def test_other_errors_are_internal(self):
        assert status_code_for(ConfigurationError("broken")) == 500
