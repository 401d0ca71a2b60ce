"""API v1 router configuration."""

from fastapi import APIRouter

from app.api.v1.endpoints import health, planning

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(planning.router, prefix="/planning", tags=["Planning"])
