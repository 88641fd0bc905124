"""
FastAPI application entry point.

Configures the application with:
- Lifespan handlers for database setup and facility seeding
- CORS middleware
- Correlation ID middleware
- Engine error to HTTP status mapping
- Health and readiness probes
- API routes
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text

from parkflow.api import api_router
from parkflow.application.admin_service import FacilityAdminService
from parkflow.application.events import get_event_bus, log_event
from parkflow.core.config import get_settings
from parkflow.core.logging import get_correlation_id, get_logger, set_correlation_id, setup_logging
from parkflow.domain.errors import (
    ConflictError,
    ConsistencyError,
    LockTimeoutError,
    NotFoundError,
    ParkingError,
    ValidationError,
)
from parkflow.infrastructure.db.repository import SqlStore
from parkflow.infrastructure.db.session import close_db, get_session_factory, init_db

# Initialize logging
setup_logging()
logger = get_logger(__name__)

ERROR_STATUS: tuple[tuple[type[ParkingError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (LockTimeoutError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ConsistencyError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for(error: ParkingError) -> int:
    """HTTP status for an engine error."""
    for error_type, code in ERROR_STATUS:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str = "1.0.0"


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    status: str
    database_connected: bool
    spots_configured: int


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Handles startup and shutdown tasks:
    - Startup: Create tables, seed the layout and fine scheme, attach the
      event log observer
    - Shutdown: Clean up connections
    """
    logger.info("application_starting")

    try:
        await init_db()

        async with get_session_factory()() as session:
            created = await FacilityAdminService(SqlStore(session)).initialize_layout()
        logger.info("facility_ready", spots_created=created)

        get_event_bus().subscribe(log_event)
    except Exception as e:
        logger.error("startup_failed", error=str(e))
        raise

    logger.info("application_started")

    yield

    logger.info("application_shutting_down")
    get_event_bus().unsubscribe(log_event)
    await close_db()
    logger.info("application_shutdown_complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="ParkFlow",
        description="Parking session and settlement engine",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else ["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        """Add correlation ID to each request."""
        correlation_id = request.headers.get("X-Correlation-ID")
        set_correlation_id(correlation_id)

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = get_correlation_id()
        return response

    @app.exception_handler(ParkingError)
    async def parking_error_handler(request: Request, exc: ParkingError) -> JSONResponse:
        """Map engine errors onto HTTP responses."""
        code = status_for(exc)
        if code >= 500:
            logger.error("request_failed", path=request.url.path, error=type(exc).__name__)
        return JSONResponse(
            status_code=code,
            content={"detail": str(exc), "error": type(exc).__name__},
        )

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
    )
    async def health_check() -> HealthResponse:
        """
        Basic liveness probe.

        Returns 200 if the application is running.
        """
        return HealthResponse(status="healthy")

    @app.get(
        "/ready",
        response_model=ReadinessResponse,
        tags=["health"],
    )
    async def readiness_check() -> ReadinessResponse:
        """
        Readiness probe for load balancers.

        Returns 200 only if the database answers and the layout is seeded.
        """
        database_connected = True
        spots = 0
        try:
            async with get_session_factory()() as session:
                await session.execute(text("SELECT 1"))
                spots = await SqlStore(session).spots.count()
        except Exception as e:
            logger.warning("readiness_check_failed", error=str(e))
            database_connected = False

        all_ready = database_connected and spots > 0
        response = ReadinessResponse(
            status="ready" if all_ready else "not_ready",
            database_connected=database_connected,
            spots_configured=spots,
        )

        if not all_ready:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content=response.model_dump(),
            )

        return response

    # Include API routes
    app.include_router(api_router)

    return app


# Create app instance
app = create_app()
