"""
Main FastAPI application for the agent earnings backend.
Configures the API server with routes, middleware, error mapping and documentation.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import structlog

from agent_earnings.core.config import settings
from agent_earnings.core.database import DatabaseManager, close_database, init_database
from agent_earnings.core.exceptions import (
    DuplicateReferenceError,
    EarningsEngineException,
    FatalBatchError,
    NotFoundError,
    PersistenceError,
    RecordValidationError,
    StateConflictError,
)
from agent_earnings.core.logging import setup_logging
from agent_earnings.api.middleware import add_middleware
from agent_earnings.api.schemas.common import APIResponse, HealthCheckResponse, create_error_response
from agent_earnings.api.routes import earnings
from agent_earnings.services.earnings.engine import reset_earnings_engine


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Agent Earnings API server")
    await init_database()

    yield

    # Shutdown
    logger.info("Shutting down Agent Earnings API server")
    reset_earnings_engine()
    await close_database()


def _status_for(exc: EarningsEngineException) -> int:
    if isinstance(exc, FatalBatchError):
        return exc.status_code
    if isinstance(exc, RecordValidationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, (StateConflictError, DuplicateReferenceError)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, PersistenceError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def add_exception_handlers(app: FastAPI) -> None:
    """Map the engine's exception taxonomy onto the error envelope."""

    @app.exception_handler(EarningsEngineException)
    async def engine_exception_handler(request: Request, exc: EarningsEngineException):
        status_code = _status_for(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "Request rejected",
            method=request.method,
            url=str(request.url),
            error_code=exc.code,
            error=exc.message,
            status_code=status_code
        )
        body = create_error_response(exc.message, error_code=exc.code, details=exc.details)
        return JSONResponse(
            status_code=status_code,
            content=body.model_dump(mode="json", by_alias=True)
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        body = create_error_response(
            "Request validation failed",
            error_code="REQUEST_VALIDATION_ERROR",
            details={"errors": [
                {"loc": [str(part) for part in error["loc"]], "message": error["msg"]}
                for error in exc.errors()
            ]}
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json", by_alias=True)
        )


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    # Setup logging
    setup_logging()

    app = FastAPI(
        title="Agent Earnings API",
        description="""
        Admin API for agent earnings.

        ## Features

        * **Bulk Upload** - JSON or CSV ingestion with a reconciliation report
        * **Review** - Approve or reject pending earnings, one at a time or in bulk
        * **Ledger** - Confirmed earnings reach agent balances exactly once
        * **Export** - CSV template and filtered CSV export

        ## Caller identity

        Authentication happens upstream. Every mutating request carries:
        ```
        X-Admin-User: <admin identity>
        ```

        ## Error Handling

        All endpoints return a versioned envelope (`schemaVersion`) with
        error codes for programmatic handling.
        """,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # Add middleware
    add_middleware(app)
    add_exception_handlers(app)

    # Health check endpoint
    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        tags=["System"],
        summary="Health Check",
        description="Check API server health and service status"
    )
    async def health_check():
        """Health check endpoint."""
        if await DatabaseManager.health_check():
            return HealthCheckResponse(version=settings.app_version)

        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=HealthCheckResponse(
                status="unhealthy",
                version=settings.app_version,
                services={
                    "database": "unhealthy",
                    "api": "healthy"
                }
            ).model_dump(mode="json", by_alias=True)
        )

    # Root endpoint
    @app.get(
        "/",
        response_model=APIResponse,
        tags=["System"],
        summary="API Information",
        description="Get basic API information and status"
    )
    async def root():
        """Root endpoint with API information."""
        return APIResponse(
            message=f"Agent Earnings API v{settings.app_version} ({settings.environment})"
        )

    # Include routers
    app.include_router(
        earnings.router,
        prefix=f"{settings.api_v1_prefix}/admin/earnings",
        tags=["Earnings"]
    )

    logger.info("FastAPI application created successfully")
    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "agent_earnings.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower()
    )
