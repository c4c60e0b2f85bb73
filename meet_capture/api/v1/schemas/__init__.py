"""
API v1 schemas module.
"""

from .bot import (
    JoinRequest,
    JoinResponse,
    StopRequest,
    StopResponse,
    SegmentResponse,
    StatusResponse,
    SessionSummary,
    SessionListResponse,
    HealthCheckResponse,
)

__all__ = [
    "JoinRequest",
    "JoinResponse",
    "StopRequest",
    "StopResponse",
    "SegmentResponse",
    "StatusResponse",
    "SessionSummary",
    "SessionListResponse",
    "HealthCheckResponse",
]
