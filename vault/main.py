"""
Media Vault Lifecycle API - Main Application
FastAPI application for trash lifecycle and storage quota management.
"""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import time
from contextlib import asynccontextmanager

from vault.core.config import settings
from vault.core.logging import configure_logging
from vault.api.v1 import api_router
from vault.api.v1.deps import shutdown_lifecycle
from vault.db import check_db_connection
from vault.middleware import MetricsMiddleware
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from vault.metrics import app_info, app_uptime_seconds

configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

logger = logging.getLogger(__name__)

# Track application start time for uptime metric
_app_start_time = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    logger.info("Starting Media Vault Lifecycle API...")
    logger.info(f"Version: {settings.APP_VERSION}")
    logger.info(
        f"Trash retention: {settings.TRASH_RETENTION_DAYS} days, "
        f"storage backend: {settings.STORAGE_BACKEND}"
    )

    app_info.labels(version=settings.APP_VERSION, environment="production").set(1)

    if check_db_connection():
        logger.info("Database connection: OK")
    else:
        logger.error("Database connection: FAILED")

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down Media Vault Lifecycle API...")
    shutdown_lifecycle()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Trash, restore and permanent deletion of vault assets "
                "with per-user storage quota accounting.",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add Prometheus Metrics Middleware
app.add_middleware(MetricsMiddleware)


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code,
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation error",
            "details": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold exception instances that JSONResponse cannot encode
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {"kind": "internal", "message": "An unexpected error occurred"},
            "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
        },
    )


@app.get("/health", tags=["health"])
async def health_check():
    """
    Basic health check endpoint.
    Returns the API status, version and dependency state.
    """
    db_status = "healthy" if check_db_connection() else "unhealthy"

    storage_status = "healthy"
    if settings.STORAGE_BACKEND == "local" and not settings.storage_root_exists:
        storage_status = "unhealthy"

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "database": db_status,
        "storage": {"backend": settings.STORAGE_BACKEND, "status": storage_status},
    }


# Include API router
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/metrics", tags=["monitoring"])
async def metrics():
    """
    Prometheus metrics endpoint.

    Metrics include:
    - API request counts and durations
    - Trash operation outcomes and purge durations
    - Expiry sweep runs
    - Per-user storage usage
    """
    app_uptime_seconds.set(time.time() - _app_start_time)

    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


@app.get("/", tags=["root"])
async def root():
    """
    Root endpoint.
    Provides basic API information.
    """
    return {
        "message": "Welcome to Media Vault Lifecycle API",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vault.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower(),
    )
