"""Health check router.

Handles health check endpoints for service monitoring.
"""

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel

from apps.registry.constants import SERVICE_VERSION
from apps.registry.storage import ObjectStoreError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


# =============================================================================
# Pydantic Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response."""

    status: str
    version: str
    environment: str
    services: dict[str, str]


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=SERVICE_VERSION,
        environment=request.app.state.settings.environment,
    )


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check(request: Request) -> DetailedHealthResponse:
    """Detailed health check with object store status.

    Read-only: the bucket is never created here, and store errors are logged
    rather than echoed to unauthenticated callers.
    """
    settings = request.app.state.settings
    store = request.app.state.store
    services: dict[str, str] = {}
    overall_healthy = True

    try:
        if await store.bucket_exists():
            services["object_store"] = "healthy"
        else:
            logger.warning(f"Object store health check failed: bucket {store.bucket} is missing")
            services["object_store"] = "unhealthy"
            overall_healthy = False
    except ObjectStoreError as e:
        logger.warning(f"Object store health check failed: {e}")
        services["object_store"] = "unhealthy"
        overall_healthy = False

    return DetailedHealthResponse(
        status="healthy" if overall_healthy else "degraded",
        version=SERVICE_VERSION,
        environment=settings.environment,
        services=services,
    )
