# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the tutormind API.

Example:
    uvicorn tutormind.api.app:create_app --factory --port 8080
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from tutormind.api.dependencies import close_db, init_db, init_memory_manager
from tutormind.api.routes import health
from tutormind.api.v1 import router as v1_router
from tutormind.core.config import get_settings
from tutormind.core.memory import (
    ExtractionParseError,
    MemoryNotFoundError,
    MemoryServiceError,
    MemoryValidationError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from tutormind.infrastructure.background import (
    setup_dramatiq,
    shutdown_dramatiq,
    start_scheduler,
    stop_scheduler,
)
from tutormind.utils.logging import setup_logging

logger = logging.getLogger(__name__)

# Most specific first; MemoryForbiddenError is rendered as not found.
ERROR_STATUS: tuple[tuple[type[MemoryServiceError], int], ...] = (
    (MemoryValidationError, status.HTTP_400_BAD_REQUEST),
    (MemoryNotFoundError, status.HTTP_404_NOT_FOUND),
    (ExtractionParseError, status.HTTP_502_BAD_GATEWAY),
    (UpstreamUnavailableError, status.HTTP_502_BAD_GATEWAY),
    (UpstreamTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
)


def status_for(error: MemoryServiceError) -> int:
    """Map a memory engine error to an HTTP status code."""
    for error_type, code in ERROR_STATUS:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def memory_error_handler(request: Request, exc: MemoryServiceError) -> JSONResponse:
    """Render memory engine errors as {"success": false, "error": {...}}."""
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)

    # Ownership failures are reported as plain absence.
    error_code = "not_found" if isinstance(exc, MemoryNotFoundError) else exc.code
    return JSONResponse(
        status_code=code,
        content={"success": False, "error": {"code": error_code, "message": exc.message}},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Initializes and cleans up:
    - Database connection and vector index
    - Memory manager
    - Dramatiq broker
    - APScheduler for the decay job

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info(
        "Starting tutormind API",
        extra={"environment": settings.environment, "debug": settings.debug},
    )

    # =========================================================================
    # Startup
    # =========================================================================

    try:
        await init_db()
        logger.info("Database connections initialized")
    except Exception as e:
        logger.warning("Failed to initialize database connections: %s", str(e))

    try:
        await init_memory_manager()
        logger.info("Memory manager initialized")
    except Exception as e:
        logger.warning("Failed to initialize memory manager: %s", str(e))

    try:
        setup_dramatiq()
        logger.info("Dramatiq broker initialized")
    except Exception as e:
        logger.warning("Failed to setup Dramatiq: %s", str(e))

    try:
        await start_scheduler()
        logger.info("Scheduler started")
    except Exception as e:
        logger.warning("Failed to start scheduler: %s", str(e))

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    # Stop scheduler first (it sends messages)
    try:
        await stop_scheduler()
        logger.info("Scheduler stopped")
    except Exception as e:
        logger.warning("Error stopping scheduler: %s", str(e))

    try:
        shutdown_dramatiq()
        logger.info("Dramatiq broker shutdown")
    except Exception as e:
        logger.warning("Error shutting down Dramatiq: %s", str(e))

    try:
        await close_db()
        logger.info("Database connections closed")
    except Exception as e:
        logger.warning("Error closing database connections: %s", str(e))

    logger.info("Shutting down tutormind API")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="tutormind API",
        description="Long-term memory for the tutor",
        version="1.0.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    # =========================================================================
    # Exception handlers
    # =========================================================================
    app.add_exception_handler(MemoryServiceError, memory_error_handler)

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app
