"""Execution engine running workflow definitions against a mutable execution context."""

import copy
import threading
import traceback
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Mapping, Optional, Set

from ..config import AppConfig, get_config
from ..executors import build_default_registry
from ..models.core import (
    ErrorHandlingMode,
    ExecutionError,
    ExecutionLogLevel,
    ExecutionMetadata,
    ExecutionSource,
    ExecutionStatusEnum,
    ValidationResult,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowNode,
    WorkflowNodeExecution,
    WorkflowSettings,
)
from .error_recovery import RetryConfig, execute_with_retry
from .exceptions import ExecutionEngineError, WorkflowValidationError
from .execution_context import build_context, record_node_output
from .execution_store import ExecutionStore
from .executor_registry import ExecutorRegistry
from .graph_analyzer import GraphAnalyzer, WorkflowGraph
from .logging import clear_logging_context, get_logger, set_logging_context

logger = get_logger(__name__)


class RunAborted(Exception):
    """Ends a run early with a run-level error."""

    def __init__(self, error: ExecutionError):
        super().__init__(error.message)
        self.error = error


class ExecutionEngine:
    """Runs workflow definitions and keeps their run records.

    A run traverses its graph sequentially and depth-first from every start
    node, executing each node at most once. Independent runs may proceed
    concurrently; ``start_workflow`` hands them to a bounded thread pool.
    """

    def __init__(
        self,
        registry: Optional[ExecutorRegistry] = None,
        store: Optional[ExecutionStore] = None,
        analyzer: Optional[GraphAnalyzer] = None,
        config: Optional[AppConfig] = None
    ):
        """Initialize the execution engine.

        Args:
            registry: Executor registry; defaults to every built-in executor
                with in-process collaborators
            store: Store holding run records
            analyzer: Graph analyzer used for validation and traversal
            config: Application configuration
        """
        self.config = config or get_config()
        self.registry = registry or build_default_registry(
            webhook_timeout=self.config.webhook_timeout,
            script_timeout_ms=self.config.script_timeout,
        )
        self.store = store or ExecutionStore()
        self.analyzer = analyzer or GraphAnalyzer()

        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_concurrent_executions,
            thread_name_prefix="workflow-run",
        )
        self._futures: Dict[str, Future] = {}
        self._futures_lock = threading.Lock()
        self._shutdown = False

        logger.info(f"ExecutionEngine initialized with executors for: "
                    f"{', '.join(sorted(self.registry.list_executors()))}")

    # ------------------------------------------------------------------
    # Caller surface
    # ------------------------------------------------------------------

    def validate_workflow(self, definition: WorkflowDefinition) -> ValidationResult:
        """Validate a definition against the graph rules and the registered executors."""
        return self.analyzer.validate(definition, known_types=self.registry.registered_types())

    def execute_workflow(
        self,
        definition: WorkflowDefinition,
        trigger_data: Optional[Mapping[str, Any]] = None,
        context_overrides: Optional[Mapping[str, Any]] = None,
        source: ExecutionSource = ExecutionSource.EVENT,
        triggered_by: str = "system"
    ) -> WorkflowExecution:
        """
        Run a workflow to completion on the calling thread.

        Never raises: validation failures, node failures under the ``stop``
        policy and internal errors are all reported through the returned
        record's ``status`` and ``error``.

        Args:
            definition: Workflow to run
            trigger_data: Payload that triggered the run; overrides variable defaults
            context_overrides: Partial execution context (``variables``, ``user``,
                ``environment``, ``tasks``) applied on top of the seeded context
            source: What invoked the run
            triggered_by: Who or what invoked the run

        Returns:
            The run record, also kept in the execution store
        """
        try:
            execution = self._create_execution(definition, trigger_data, source, triggered_by)
        except (TypeError, ValueError) as e:
            return self._reject_trigger_data(definition, e, source, triggered_by)
        self._run(definition, execution, context_overrides)
        return execution

    def start_workflow(
        self,
        definition: WorkflowDefinition,
        trigger_data: Optional[Mapping[str, Any]] = None,
        context_overrides: Optional[Mapping[str, Any]] = None,
        source: ExecutionSource = ExecutionSource.API,
        triggered_by: str = "system"
    ) -> str:
        """
        Start a workflow run in the background and return its execution id.

        Raises:
            WorkflowValidationError: If the definition or the trigger data is invalid; no run is created
            ExecutionEngineError: If the engine has been shut down
        """
        self.analyzer.ensure_valid(definition, self.registry.registered_types())

        with self._futures_lock:
            if self._shutdown:
                raise ExecutionEngineError("Execution engine is shut down", workflow_id=definition.id)
            try:
                execution = self._create_execution(definition, trigger_data, source, triggered_by)
            except (TypeError, ValueError) as e:
                raise WorkflowValidationError(
                    f"Invalid trigger data: {e}", validation_errors=[str(e)], workflow_id=definition.id
                ) from e
            future = self._executor.submit(self._run, definition, execution, context_overrides)
            self._futures[execution.id] = future

        future.add_done_callback(lambda _: self._forget_future(execution.id))
        logger.info(f"Queued workflow execution: run_id={execution.id}, workflow_id={definition.id}")
        return execution.id

    def wait_for_execution(self, execution_id: str, timeout: Optional[float] = None) -> WorkflowExecution:
        """Block until a background run finishes and return its record.

        Raises:
            ExecutionEngineError: If the execution is unknown
            concurrent.futures.TimeoutError: If the run does not finish in time
        """
        with self._futures_lock:
            future = self._futures.get(execution_id)
        if future is not None:
            future.result(timeout=timeout)

        execution = self.store.get(execution_id)
        if execution is None:
            raise ExecutionEngineError(f"Execution {execution_id} not found", run_id=execution_id)
        return execution

    def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        return self.store.get(execution_id)

    def get_all_executions(self) -> List[WorkflowExecution]:
        return self.store.list_all()

    def get_workflow_executions(self, workflow_id: str) -> List[WorkflowExecution]:
        return self.store.list_by_workflow(workflow_id)

    def cancel_execution(self, execution_id: str) -> bool:
        """
        Cancel a pending or running execution.

        Cancellation is cooperative: a node already executing is not
        interrupted (delay nodes wake up early), but no further node is
        started and the run stays reported as cancelled.

        Returns:
            True if the run was cancelled, False if it is unknown or already terminal
        """
        execution = self.store.get(execution_id)
        if execution is None:
            logger.warning(f"Attempted to cancel unknown execution: {execution_id}")
            return False

        if not execution.cancel():
            logger.warning(f"Attempted to cancel execution {execution_id} in terminal status "
                           f"'{execution.status.value}'")
            return False

        logger.info(f"Cancelled workflow execution: {execution_id}")
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting background runs and release the worker pool."""
        with self._futures_lock:
            self._shutdown = True
        self._executor.shutdown(wait=wait)
        logger.info("Execution engine shutdown completed")

    # ------------------------------------------------------------------
    # Run orchestration
    # ------------------------------------------------------------------

    def _create_execution(
        self,
        definition: WorkflowDefinition,
        trigger_data: Optional[Mapping[str, Any]],
        source: ExecutionSource,
        triggered_by: str
    ) -> WorkflowExecution:
        execution = WorkflowExecution(
            workflow_id=definition.id,
            workflow_version=definition.version,
            trigger_data=dict(trigger_data or {}),
            metadata=ExecutionMetadata(triggered_by=triggered_by, source=source),
        )
        execution.configure_logging(definition.settings.logging)
        self.store.save(execution)
        return execution

    def _reject_trigger_data(
        self,
        definition: WorkflowDefinition,
        error: Exception,
        source: ExecutionSource,
        triggered_by: str
    ) -> WorkflowExecution:
        """Record a failed run for a trigger payload that is not a string-keyed mapping."""
        execution = self._create_execution(definition, None, source, triggered_by)
        execution.finish(ExecutionStatusEnum.FAILED, error=ExecutionError(
            code="VALIDATION_ERROR",
            message=f"Invalid trigger data: {error}",
            details={"errors": [str(error)]},
        ))
        logger.error(f"Rejected trigger data for workflow {definition.id}: {error}")
        return execution

    def _forget_future(self, execution_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(execution_id, None)

    def _run(
        self,
        definition: WorkflowDefinition,
        execution: WorkflowExecution,
        context_overrides: Optional[Mapping[str, Any]]
    ) -> None:
        """Drive one run to a terminal status. Never raises."""
        set_logging_context(run_id=execution.id, workflow_id=definition.id)
        try:
            if not execution.mark_running():
                logger.info(f"Execution {execution.id} was cancelled before it started")
                return

            logger.info(f"Started execution {execution.id} for workflow {definition.id}")
            try:
                execution.context = build_context(
                    definition,
                    execution.trigger_data,
                    context_overrides,
                    environment=self.config.environment,
                )

                validation = self.validate_workflow(definition)
                if not validation.valid:
                    raise RunAborted(ExecutionError(
                        code="VALIDATION_ERROR",
                        message="Workflow validation failed: "
                                + "; ".join(issue.message for issue in validation.errors),
                        details={"errors": [issue.model_dump(mode="json") for issue in validation.errors]},
                    ))

                summary = self._traverse(definition, execution)

            except RunAborted as abort:
                if execution.finish(ExecutionStatusEnum.FAILED, error=abort.error):
                    logger.error(f"Workflow execution {execution.id} failed: {abort.error.message}")

            except Exception as e:
                logger.error(f"Workflow execution {execution.id} failed unexpectedly: {e}", exc_info=True)
                execution.finish(ExecutionStatusEnum.FAILED, error=ExecutionError(
                    code="EXECUTION_ERROR",
                    message=str(e) or type(e).__name__,
                    stack=traceback.format_exc(),
                ))

            else:
                if execution.finish(ExecutionStatusEnum.COMPLETED, result=summary):
                    if summary["failed_nodes"]:
                        logger.warning(f"Workflow execution {execution.id} completed with failed nodes: "
                                       f"{', '.join(summary['failed_nodes'])}")
                    else:
                        logger.info(f"Workflow execution completed successfully: {execution.id}")
                else:
                    logger.info(f"Workflow execution {execution.id} ended as {execution.status.value}")
        finally:
            clear_logging_context()

    def _traverse(self, definition: WorkflowDefinition, execution: WorkflowExecution) -> Dict[str, Any]:
        """
        Depth-first traversal from every start node using an explicit stack.

        A node is executed the first time it is popped; later pops of the
        same node (diamonds, shared descendants) are skipped. A failed node's
        children are never pushed.

        Raises:
            RunAborted: On node failure under ``stop``, or when the run timeout elapses
        """
        graph = WorkflowGraph(definition)
        settings = definition.settings
        retry_config = self._retry_config(settings)
        execution.set_deadline(settings.timeout)

        visited: Set[str] = set()
        completed: List[str] = []
        failed: List[str] = []
        stack: List[WorkflowNode] = list(reversed(graph.start_nodes()))

        while stack:
            if execution.cancel_requested:
                logger.info(f"Execution {execution.id} cancelled; no further nodes will run")
                break
            if execution.remaining_time == 0:
                raise RunAborted(ExecutionError(
                    code="TIMEOUT",
                    message=f"Workflow exceeded its timeout of {settings.timeout}s",
                ))

            node = stack.pop()
            if node.id in visited:
                continue
            visited.add(node.id)

            record = self._execute_node(node, execution, retry_config)

            if record.status == ExecutionStatusEnum.COMPLETED:
                completed.append(node.id)
                children = [child for child in graph.downstream(node.id) if child.id not in visited]
                stack.extend(reversed(children))
                continue

            failed.append(node.id)
            if settings.error_handling == ErrorHandlingMode.STOP:
                raise RunAborted(ExecutionError(
                    code="NODE_EXECUTION_ERROR",
                    message=f"Node {node.id} failed: {record.error.message}",
                    node_id=node.id,
                    details={"node_type": node.type.value, "attempts": record.attempts},
                ))
            logger.warning(f"Node {node.id} failed under '{settings.error_handling.value}' "
                           f"error handling; its downstream nodes are skipped")

        return {"completed_nodes": completed, "failed_nodes": failed}

    def _execute_node(
        self,
        node: WorkflowNode,
        execution: WorkflowExecution,
        retry_config: RetryConfig
    ) -> WorkflowNodeExecution:
        """Execute one node, recording the outcome on a fresh node record.

        Every exception, including a missing executor, is caught here and
        stored as the node's error.
        """
        logger.info(f"Executing node {node.id} ({node.type.value})")
        record = WorkflowNodeExecution(
            node_id=node.id,
            node_type=node.type,
            status=ExecutionStatusEnum.RUNNING,
            input=self._snapshot_input(node, execution),
        )
        execution.add_node_record(record)
        execution.log(ExecutionLogLevel.DEBUG, f"Node {node.id} started", node_id=node.id)

        def attempt():
            record.attempts += 1
            executor = self.registry.get(node.type)
            return executor.execute(node, execution.context, execution)

        def on_retry(error: Exception, attempt_number: int, delay: float):
            execution.log(
                ExecutionLogLevel.WARN,
                f"Attempt {attempt_number} failed: {error}; retrying in {delay:.2f}s",
                node_id=node.id,
            )

        try:
            output = execute_with_retry(
                attempt,
                retry_config,
                on_retry=on_retry,
                sleep=lambda delay: execution.wait_for_cancel(delay) or execution.remaining_time == 0,
                operation=f"node {node.id}",
            )
        except Exception as e:
            error = ExecutionError(
                code="NODE_EXECUTION_ERROR",
                message=str(e) or type(e).__name__,
                node_id=node.id,
                details={"exception_type": type(e).__name__, "attempts": record.attempts},
                stack=traceback.format_exc(),
            )
            record.finish(ExecutionStatusEnum.FAILED, error=error)
            execution.log(ExecutionLogLevel.ERROR, f"Node {node.id} failed: {error.message}", node_id=node.id)
            logger.error(f"Node {node.id} execution failed for run {execution.id}: {error.message}")
            return record

        output = self._normalize_output(output)
        record.finish(ExecutionStatusEnum.COMPLETED, output=output)
        record_node_output(execution.context, node.id, output)
        execution.log(ExecutionLogLevel.INFO, f"Node {node.id} completed in {record.duration}ms", node_id=node.id)
        return record

    def _retry_config(self, settings: WorkflowSettings) -> RetryConfig:
        if settings.error_handling != ErrorHandlingMode.RETRY:
            return RetryConfig(max_attempts=1)
        if settings.retry_policy is not None:
            return RetryConfig.from_policy(settings.retry_policy)
        return RetryConfig(
            max_attempts=self.config.retry_max_attempts,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
        )

    @staticmethod
    def _snapshot_input(node: WorkflowNode, execution: WorkflowExecution) -> Dict[str, Any]:
        snapshot: Dict[str, Any] = {"data": copy.deepcopy(node.data)}
        if execution.log_settings.include_data:
            snapshot["variables"] = copy.deepcopy(execution.context.variables)
        return snapshot

    @staticmethod
    def _normalize_output(output: Any) -> Dict[str, Any]:
        if output is None:
            return {}
        if isinstance(output, dict):
            return output
        return {"value": output}
