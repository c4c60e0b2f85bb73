"""
Health check endpoint.
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter

from meet_capture.api.v1.schemas.bot import HealthCheckResponse
from meet_capture.config import settings
from meet_capture.core.dependencies import SessionRegistryDep

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse, tags=["Health"])
async def health_check(registry=SessionRegistryDep) -> Dict[str, Any]:
    """
    Health check endpoint.

    Returns:
        Health status with active session count
    """
    return {
        "status": "healthy",
        "service": settings.project_name,
        "version": settings.version,
        "timestamp": datetime.now(),
        "active_sessions": registry.active_count,
        "push_connected": registry.relay.push_connected,
    }
