"""FastAPI REST endpoints for the workflow automation engine."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field

from ..core.exceptions import (
    APIError,
    ExecutionEngineError,
    WorkflowValidationError,
    create_error_response,
)
from ..core.execution_engine import ExecutionEngine
from ..core.logging import get_logger
from ..models.core import (
    CamelModel,
    ExecutionSource,
    ValidationResult,
    WorkflowDefinition,
    WorkflowExecution,
)

logger = get_logger(__name__)

# Create router
router = APIRouter(prefix="/api/v1", tags=["automation"])

# Global instance (initialized in main.py)
_execution_engine: Optional[ExecutionEngine] = None


def init_dependencies(execution_engine: ExecutionEngine):
    """Initialize the global dependencies."""
    global _execution_engine
    _execution_engine = execution_engine


def get_execution_engine() -> ExecutionEngine:
    """Dependency to get execution engine."""
    if _execution_engine is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Execution engine not initialized"
        )
    return _execution_engine


# Request/Response models
class RunWorkflowRequest(CamelModel):
    """Request model for running a workflow."""
    workflow: WorkflowDefinition = Field(..., description="Workflow definition to run")
    trigger_data: Dict[str, Any] = Field(default_factory=dict, description="Payload that triggered the run")
    context_overrides: Optional[Dict[str, Any]] = Field(None, description="Partial execution context")
    triggered_by: str = Field("api", description="Who or what invoked the run")


class StartWorkflowResponse(CamelModel):
    """Response model for a background workflow run."""
    execution_id: str = Field(..., description="Identifier of the queued run")
    status: str = Field(..., description="Status of the run when the response was produced")
    message: str = Field(..., description="Success message")


class CancelExecutionResponse(CamelModel):
    """Response model for a cancellation request."""
    execution_id: str
    cancelled: bool
    status: str
    message: str


def _not_found(execution_id: str, endpoint: str) -> HTTPException:
    error = APIError(
        f"Execution with ID '{execution_id}' not found",
        status_code=status.HTTP_404_NOT_FOUND,
        endpoint=endpoint,
        error_code="ExecutionNotFound",
    )
    return HTTPException(status_code=error.status_code, detail=create_error_response(error))


# Endpoints

@router.post(
    "/workflows/validate",
    response_model=ValidationResult,
    summary="Validate a workflow definition",
    description="Check a workflow definition's structure without running it"
)
async def validate_workflow(
    definition: WorkflowDefinition,
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> ValidationResult:
    """
    Validate a workflow definition.

    Args:
        definition: Workflow definition to validate
        execution_engine: Execution engine dependency

    Returns:
        Validation result with errors and warnings
    """
    logger.debug(f"Validating workflow: {definition.id}")
    result = execution_engine.validate_workflow(definition)
    logger.debug(f"Workflow validation completed. Valid: {result.valid}")
    return result


@router.post(
    "/workflows/execute",
    response_model=WorkflowExecution,
    summary="Run a workflow synchronously",
    description="Run a workflow to completion and return its run record"
)
def execute_workflow(
    request: RunWorkflowRequest,
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> WorkflowExecution:
    """
    Run a workflow and wait for it to finish.

    Failures are reported in the returned record's ``status`` and ``error``;
    the response is 200 whenever a run record was produced.
    """
    logger.info(f"Executing workflow {request.workflow.id} for {request.triggered_by}")
    return execution_engine.execute_workflow(
        request.workflow,
        trigger_data=request.trigger_data,
        context_overrides=request.context_overrides,
        source=ExecutionSource.API,
        triggered_by=request.triggered_by,
    )


@router.post(
    "/workflows/start",
    response_model=StartWorkflowResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a workflow in the background",
    description="Queue a workflow run and return its execution id immediately"
)
async def start_workflow(
    request: RunWorkflowRequest,
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> StartWorkflowResponse:
    """
    Start a workflow run in the background.

    Raises:
        HTTPException: 400 if the definition is invalid, 503 if the engine is shut down
    """
    try:
        execution_id = execution_engine.start_workflow(
            request.workflow,
            trigger_data=request.trigger_data,
            context_overrides=request.context_overrides,
            source=ExecutionSource.API,
            triggered_by=request.triggered_by,
        )
    except WorkflowValidationError as e:
        logger.warning(f"Rejected invalid workflow {request.workflow.id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=create_error_response(e))
    except ExecutionEngineError as e:
        logger.error(f"Could not start workflow {request.workflow.id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=create_error_response(e))

    execution = execution_engine.get_execution(execution_id)
    return StartWorkflowResponse(
        execution_id=execution_id,
        status=execution.status.value if execution else "pending",
        message=f"Workflow {request.workflow.id} started",
    )


@router.get(
    "/executions",
    response_model=List[WorkflowExecution],
    summary="List workflow executions",
    description="List every run record, optionally filtered by workflow id"
)
async def list_executions(
    workflow_id: Optional[str] = None,
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> List[WorkflowExecution]:
    if workflow_id:
        return execution_engine.get_workflow_executions(workflow_id)
    return execution_engine.get_all_executions()


@router.get(
    "/executions/{execution_id}",
    response_model=WorkflowExecution,
    summary="Get a workflow execution",
    description="Retrieve the run record of a workflow execution"
)
async def get_execution(
    execution_id: str,
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> WorkflowExecution:
    """
    Get the run record of a workflow execution.

    Raises:
        HTTPException: 404 if the execution is unknown
    """
    execution = execution_engine.get_execution(execution_id)
    if execution is None:
        logger.warning(f"Execution not found: {execution_id}")
        raise _not_found(execution_id, "get_execution")
    return execution


@router.post(
    "/executions/{execution_id}/cancel",
    response_model=CancelExecutionResponse,
    summary="Cancel a workflow execution",
    description="Cancel a pending or running workflow execution"
)
async def cancel_execution(
    execution_id: str,
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> CancelExecutionResponse:
    """
    Cancel a workflow execution.

    Cancelling a run that already finished is not an error; the response
    reports ``cancelled: false`` with the run's final status.

    Raises:
        HTTPException: 404 if the execution is unknown
    """
    execution = execution_engine.get_execution(execution_id)
    if execution is None:
        raise _not_found(execution_id, "cancel_execution")

    logger.info(f"Cancelling workflow execution: {execution_id}")
    cancelled = execution_engine.cancel_execution(execution_id)

    if cancelled:
        message = f"Execution {execution_id} cancelled successfully"
    else:
        message = f"Execution {execution_id} could not be cancelled (already {execution.status.value})"

    return CancelExecutionResponse(
        execution_id=execution_id,
        cancelled=cancelled,
        status=execution.status.value,
        message=message,
    )
