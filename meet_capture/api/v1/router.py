"""
API v1 router aggregation.
"""

from fastapi import APIRouter
from meet_capture.api.v1.endpoints import bot, health

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(bot.router, prefix="/bot", tags=["Bot"])
api_router.include_router(health.router, tags=["Health"])

__all__ = ["api_router"]
