# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints."""

import logging
import time
from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel, Field

from tutormind.core.config import get_settings
from tutormind.infrastructure.background import get_broker_manager
from tutormind.infrastructure.database import DatabaseError, get_db_manager
from tutormind.infrastructure.vectors import get_qdrant
from tutormind.utils.datetime import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()

_server_start_time = time.time()


class ComponentHealth(BaseModel):
    """Individual component health status."""

    status: str = Field(description="healthy, unhealthy or disabled")
    latency_ms: float | None = Field(None, description="Response latency in ms")
    message: str | None = Field(None, description="Additional status message")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(description="Overall health status")
    version: str = Field(description="API version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    checked_at: datetime = Field(description="When health was checked")
    components: dict[str, ComponentHealth] = Field(default_factory=dict)


async def check_database() -> ComponentHealth:
    """Check the memory database connection."""
    try:
        manager = get_db_manager()
    except DatabaseError as e:
        return ComponentHealth(status="unhealthy", message=str(e))

    start = time.time()
    if not await manager.check_connection():
        return ComponentHealth(status="unhealthy", message="Database unreachable")
    return ComponentHealth(status="healthy", latency_ms=round((time.time() - start) * 1000, 2))


async def check_qdrant() -> ComponentHealth:
    """Check the vector index, if enabled."""
    client = get_qdrant()
    if client is None:
        return ComponentHealth(status="disabled", message="Using in-process similarity")

    start = time.time()
    if not await client.ping():
        return ComponentHealth(status="unhealthy", message="Qdrant unreachable")
    return ComponentHealth(status="healthy", latency_ms=round((time.time() - start) * 1000, 2))


def check_broker() -> ComponentHealth:
    """Report the Dramatiq broker state."""
    stats = get_broker_manager().get_queue_stats()
    status = stats.get("status", "unknown")
    if status == "not_initialized":
        return ComponentHealth(status="unhealthy", message="Broker not initialized")
    return ComponentHealth(status=status, message=stats.get("error"))


@router.get("/health", response_model=HealthResponse, summary="Service health")
async def health() -> HealthResponse:
    """Report the health of the service and its dependencies.

    The service is degraded when the vector index or broker is unhealthy
    and unhealthy when the database is.
    """
    settings = get_settings()
    components = {
        "database": await check_database(),
        "qdrant": await check_qdrant(),
        "broker": check_broker(),
    }

    if components["database"].status != "healthy":
        overall = "unhealthy"
    elif any(c.status == "unhealthy" for c in components.values()):
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version="1.0.0",
        environment=settings.environment,
        uptime_seconds=int(time.time() - _server_start_time),
        checked_at=utc_now(),
        components=components,
    )
