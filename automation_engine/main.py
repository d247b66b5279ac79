"""Main FastAPI application for the workflow automation engine."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from automation_engine.api.endpoints import init_dependencies, router
from automation_engine.config import AppConfig, load_config
from automation_engine.core.execution_engine import ExecutionEngine
from automation_engine.core.logging import get_logger, setup_logging
from automation_engine.core.middleware import ErrorHandlingMiddleware
from automation_engine.executors import build_default_registry


def create_app(engine: Optional[ExecutionEngine] = None, config: Optional[AppConfig] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        engine: Pre-built execution engine; built from configuration when omitted
        config: Application configuration; loaded from the environment when omitted
    """
    config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        setup_logging(**config.get_logging_config())
        logger = get_logger(__name__)
        logger.info(f"Starting {config.app_name} v{config.app_version} ({config.environment.value})")

        execution_engine = engine or ExecutionEngine(
            registry=build_default_registry(
                webhook_timeout=config.webhook_timeout,
                script_timeout_ms=config.script_timeout,
            ),
            config=config,
        )
        init_dependencies(execution_engine)
        logger.info("Core components initialized")

        yield

        # Shutdown
        logger.info(f"Shutting down {config.app_name}")
        try:
            execution_engine.shutdown(wait=False)
        except Exception as e:
            logger.error(f"Error during execution engine shutdown: {str(e)}")

    app = FastAPI(
        title=config.app_name,
        description="Workflow automation engine running node graphs against an execution context",
        version=config.app_version,
        debug=config.debug,
        lifespan=lifespan
    )
    app.add_middleware(ErrorHandlingMiddleware)
    app.include_router(router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "workflow-automation-engine", "version": config.app_version}

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), **load_config().get_uvicorn_config())
