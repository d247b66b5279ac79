"""Request tracing and error rendering for the HTTP surface."""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Type

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .exceptions import (
    APIError,
    ExecutionEngineError,
    WorkflowEngineError,
    WorkflowValidationError,
    create_error_response,
)
from .logging import clear_logging_context, get_logger, log_with_context, set_logging_context

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Checked in order; the first matching class wins
STATUS_BY_ERROR: Dict[Type[WorkflowEngineError], int] = {
    WorkflowValidationError: 400,
    ExecutionEngineError: 503,
}


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Binds a request id to the logging context and turns uncaught errors into JSON.

    A request id sent by the client in ``X-Request-ID`` is reused; otherwise
    a new one is generated. Either way it is echoed on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        route = f"{request.method} {request.url.path}"
        started = time.perf_counter()
        set_logging_context(request_id=request_id, client_ip=request.client.host if request.client else "unknown")

        try:
            response = await call_next(request)
            logger.info(f"{route} -> {response.status_code} ({time.perf_counter() - started:.3f}s)")
        except WorkflowEngineError as e:
            log_with_context(
                logger, logging.WARNING,
                f"{route} failed with {e.error_code} ({time.perf_counter() - started:.3f}s)",
                error=e.to_dict(),
            )
            response = JSONResponse(status_code=status_code_for(e), content=create_error_response(e))
        except Exception as e:
            logger.error(f"{route} raised {type(e).__name__}: {e}", exc_info=True)
            response = JSONResponse(
                status_code=500,
                content={
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "details": {
                        "error_type": type(e).__name__,
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                    },
                    "request_id": request_id,
                },
            )
        finally:
            clear_logging_context()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def status_code_for(error: WorkflowEngineError) -> int:
    """HTTP status for an engine error that escaped the route handlers."""
    if isinstance(error, APIError):
        return error.status_code
    if isinstance(error, ExecutionEngineError) and "not found" in error.message.lower():
        return 404
    for error_type, status_code in STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            return status_code
    return 500
