"""
API request/response schemas for bot operations.
"""

from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime


class JoinRequest(BaseModel):
    """Request to send the bot into a meeting."""
    meeting_url: str = Field(..., description="Google Meet URL to join", min_length=1)
    meeting_id: str = Field(..., description="Backend meeting identifier", min_length=1)
    duration: Optional[float] = Field(default=None, description="Max capture length in minutes", gt=0)
    bot_name: Optional[str] = Field(default=None, description="Display name for the bot in the meeting")


class JoinResponse(BaseModel):
    """Response for a join request."""
    success: bool
    session_id: Optional[str] = None
    meeting_id: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None


class StopRequest(BaseModel):
    """Request to stop a session."""
    reason: Optional[str] = Field(default=None, description="Why the bot is being stopped")


class StopResponse(BaseModel):
    """Response for a stop request, with the flattened transcript."""
    success: bool
    session_id: str
    status: str
    transcript: str
    segment_count: int
    duration: float
    error: Optional[str] = None


class SegmentResponse(BaseModel):
    speaker: str
    text: str
    start: float
    end: float
    index: int
    word_count: int


class StatusResponse(BaseModel):
    """Status of one session."""
    session_id: str
    meeting_id: str
    status: str
    segment_count: int
    duration: float
    last_segment: Optional[SegmentResponse] = None
    error: Optional[str] = None


class SessionSummary(BaseModel):
    session_id: str
    meeting_id: str
    status: str
    segment_count: int
    started_at: Optional[datetime] = None


class SessionListResponse(BaseModel):
    success: bool = True
    sessions: List[SessionSummary]
    count: int


class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
    timestamp: datetime
    active_sessions: int
    push_connected: bool
