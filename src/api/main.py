"""
FastAPI Application Setup

Main entry point for the admin jobs API.

Responsibility:
    - FastAPI app initialization with a lifespan that builds the
      DispatchContainer (and starts the worker pool when RUN_WORKERS_IN_API)
    - Router registration (jobs)
    - CORS middleware configuration
    - Domain exception handlers
    - Request logging middleware
    - Health check endpoint

Architecture Notes:
    - Part of API Layer (Presentation)
    - Entry point for HTTP server (uvicorn)
    - Centralizes cross-cutting concerns (logging, CORS, error handling)
    - No business logic - pure HTTP orchestration

Contains:
    - create_app() factory function
    - Exception handlers mapping domain errors to ErrorResponse bodies
    - Request logging middleware
    - Health check endpoint: GET /health

Does NOT contain:
    - Job execution (worker pool, started by the lifespan or scripts/run_worker.py)
    - Broker selection (src.infrastructure.container)
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import routers
from src.api.routers import jobs

# Import shared schemas
from src.api.schemas.common import ErrorResponse, HealthCheckResponse

# Import domain exceptions for global handling
from src.domain.shared.exceptions import (
    BrokerUnavailableError,
    DomainException,
    IllegalJobStateError,
    InvalidJobPayloadError,
    JobNotFoundException,
    UnknownQueueError,
)
from src.infrastructure.container import DispatchContainer, create_container

# Configure logger
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"

ContainerFactory = Callable[[], Awaitable[DispatchContainer]]


# ============================================================================
# MIDDLEWARE
# ============================================================================


async def request_logging_middleware(request: Request, call_next):
    """
    Request logging middleware.

    Logs every request with method, path, status code, and duration.

    Logging Format:
        INFO: "Incoming request: POST /api/jobs/process-resume"
        INFO: "Request completed: POST /api/jobs/process-resume - 202 - 0.004s"
    """
    logger.info(f"Incoming request: {request.method} {request.url.path}")

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    logger.info(
        f"Request completed: {request.method} {request.url.path} - "
        f"{response.status_code} - {duration:.3f}s"
    )

    return response


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================


def _error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(code=code, message=message, details=details).model_dump(),
    )


async def domain_exception_handler(request: Request, exc: DomainException):
    """
    Global exception handler for domain layer exceptions.

    Mapping:
        - UnknownQueueError -> 400 UNKNOWN_QUEUE
        - InvalidJobPayloadError -> 422 INVALID_JOB_PAYLOAD (field errors in details)
        - IllegalJobStateError -> 409 ILLEGAL_STATE
        - BrokerUnavailableError -> 503 BROKER_UNAVAILABLE
        - Other DomainException -> 400 Bad Request
    """
    details: dict = {"exception_type": exc.__class__.__name__}

    if isinstance(exc, UnknownQueueError):
        status_code = status.HTTP_400_BAD_REQUEST
        error_code = "UNKNOWN_QUEUE"
        details["queue"] = exc.queue
    elif isinstance(exc, InvalidJobPayloadError):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
        error_code = "INVALID_JOB_PAYLOAD"
        details.update({"queue": exc.queue, "errors": exc.errors})
    elif isinstance(exc, IllegalJobStateError):
        status_code = status.HTTP_409_CONFLICT
        error_code = "ILLEGAL_STATE"
        details.update({"job_id": exc.job_id, "state": exc.state})
    elif isinstance(exc, BrokerUnavailableError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        error_code = "BROKER_UNAVAILABLE"
    else:
        status_code = status.HTTP_400_BAD_REQUEST
        error_code = exc.__class__.__name__.replace("Error", "").upper()

    logger.warning(
        f"Domain exception: {exc.__class__.__name__} - {exc.message} - "
        f"Request: {request.method} {request.url.path}"
    )

    return _error_response(status_code, error_code, exc.message, details)


async def job_not_found_exception_handler(request: Request, exc: JobNotFoundException):
    """Convert JobNotFoundException to 404 Not Found."""
    logger.warning(
        f"Job not found: {exc.job_id} - Request: {request.method} {request.url.path}"
    )
    return _error_response(
        status.HTTP_404_NOT_FOUND, "JOB_NOT_FOUND", exc.message, {"job_id": exc.job_id}
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unexpected exceptions.

    Converts to 500 Internal Server Error and logs the full stack trace.
    """
    logger.error(
        f"Unexpected error: {exc.__class__.__name__} - {str(exc)} - "
        f"Request: {request.method} {request.url.path}",
        exc_info=True,
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred",
        {"type": exc.__class__.__name__},
    )


# ============================================================================
# APP FACTORY
# ============================================================================


def create_app(container_factory: Optional[ContainerFactory] = None) -> FastAPI:
    """
    FastAPI application factory.

    Args:
        container_factory: Async callable returning a DispatchContainer
            (create_container with settings from env if None)

    Lifespan:
        1. Build the container (broker, registry, dispatcher)
        2. Start the worker pool when settings.run_workers_in_api
        3. On shutdown drain the pool and close the container

    Usage:
        >>> app = create_app()
        >>> # uvicorn src.api.main:app --reload
    """
    factory = container_factory or create_container

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container = await factory()
        app.state.container = container
        if container.settings.run_workers_in_api:
            await container.start_workers()
            logger.info("Worker pool running inside the API process")
        try:
            yield
        finally:
            await container.aclose()

    app = FastAPI(
        title="UpStar Admin Jobs API",
        version=API_VERSION,
        description=(
            "Background job dispatch for resume processing, job matching, "
            "notification emails, job-listing sync and analytics reports."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.middleware("http")(request_logging_middleware)

    app.add_exception_handler(JobNotFoundException, job_not_found_exception_handler)
    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(jobs.router, prefix="/api")

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        status_code=status.HTTP_200_OK,
        summary="Health check endpoint",
        tags=["health"],
    )
    async def health_check(request: Request) -> HealthCheckResponse:
        """
        Liveness plus the broker kind the API was started with.

        Examples:
            >>> curl http://localhost:8000/health
            {"status": "ok", "version": "0.1.0",
             "timestamp": "2025-10-11T10:30:00+00:00", "broker": "memory"}
        """
        container = getattr(request.app.state, "container", None)
        return HealthCheckResponse(
            status="ok",
            version=API_VERSION,
            timestamp=datetime.now(timezone.utc).isoformat(),
            broker=container.broker_kind if container else "unknown",
        )

    logger.info("FastAPI application created: /api/jobs, GET /health")

    return app


# ============================================================================
# APP INSTANCE (for uvicorn)
# ============================================================================


app = create_app()
