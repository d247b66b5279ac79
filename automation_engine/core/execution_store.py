"""In-memory store of workflow run records."""

import threading
from typing import Dict, List, Optional

from ..models.core import WorkflowExecution
from .logging import get_logger

logger = get_logger(__name__)


class ExecutionStore:
    """Thread-safe, id-keyed table of run records.

    Records stay until they are removed explicitly; eviction is left to the
    operator.
    """

    def __init__(self):
        self._executions: Dict[str, WorkflowExecution] = {}
        self._lock = threading.RLock()
        logger.debug("ExecutionStore initialized")

    def save(self, execution: WorkflowExecution) -> None:
        with self._lock:
            self._executions[execution.id] = execution

    def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        with self._lock:
            return self._executions.get(execution_id)

    def list_all(self) -> List[WorkflowExecution]:
        """All records in insertion order."""
        with self._lock:
            return list(self._executions.values())

    def list_by_workflow(self, workflow_id: str) -> List[WorkflowExecution]:
        with self._lock:
            return [execution for execution in self._executions.values() if execution.workflow_id == workflow_id]

    def remove(self, execution_id: str) -> bool:
        with self._lock:
            removed = self._executions.pop(execution_id, None)
        if removed is not None:
            logger.info(f"Removed execution record {execution_id}")
        return removed is not None

    def clear(self) -> None:
        with self._lock:
            self._executions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._executions)

    def __contains__(self, execution_id: str) -> bool:
        with self._lock:
            return execution_id in self._executions
