"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from app.config import settings
from app.core.redis_client import check_redis_connection
from app.database import (
    check_database_connection,
    clinic_routing_mode,
    open_clinic_engine_count,
)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Detailed health check response model."""

    database: str
    cache: str
    clinic_routing: str
    clinic_engines: int


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns:
        Basic health status
    """
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Detailed health check with database, cache and tenant routing status.

    The cache is optional for bookings, so an unreachable Redis only marks
    the service as degraded.

    Returns:
        Detailed health status including dependencies
    """
    db_healthy = await check_database_connection()
    cache_healthy = await check_redis_connection()

    if not db_healthy:
        overall = "unhealthy"
    elif not cache_healthy:
        overall = "degraded"
    else:
        overall = "healthy"

    return DetailedHealthResponse(
        status=overall,
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        cache="healthy" if cache_healthy else "unavailable",
        clinic_routing=clinic_routing_mode(),
        clinic_engines=open_clinic_engine_count(),
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    """Simple ping endpoint."""
    return {"message": "pong"}
