"""Tests for the in-memory execution store."""

from automation_engine.core.execution_store import ExecutionStore
from automation_engine.models.core import WorkflowExecution


def make_execution(workflow_id="wf-1"):
    return WorkflowExecution(workflow_id=workflow_id, workflow_version="1.0.0")


class TestExecutionStore:
    """Test saving, listing and removing run records."""

    def test_save_and_get(self):
        store = ExecutionStore()
        execution = make_execution()

        store.save(execution)

        assert store.get(execution.id) is execution
        assert execution.id in store
        assert len(store) == 1

    def test_get_unknown(self):
        assert ExecutionStore().get("missing") is None

    def test_list_by_workflow_keeps_insertion_order(self):
        store = ExecutionStore()
        first, other, second = make_execution(), make_execution("wf-2"), make_execution()
        for execution in (first, other, second):
            store.save(execution)

        assert store.list_by_workflow("wf-1") == [first, second]
        assert store.list_all() == [first, other, second]

    def test_remove_and_clear(self):
        store = ExecutionStore()
        execution = make_execution()
        store.save(execution)

        assert store.remove(execution.id) is True
        assert store.remove(execution.id) is False

        store.save(execution)
        store.clear()
        assert len(store) == 0
