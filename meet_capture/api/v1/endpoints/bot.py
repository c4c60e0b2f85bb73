"""
Bot control endpoints: join, stop, status and session listing.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body

from meet_capture.api.v1.schemas.bot import (
    JoinRequest,
    JoinResponse,
    SessionListResponse,
    StatusResponse,
    StopRequest,
    StopResponse,
)
from meet_capture.config import settings
from meet_capture.core.dependencies import SessionRegistryDep
from meet_capture.core.exceptions import HTTPBadRequest, HTTPInternalServerError, HTTPNotFound
from meet_capture.core.logging import get_logger
from meet_capture.models import Segment

router = APIRouter()
logger = get_logger("api.bot")


def _segment_payload(segment: Optional[Segment]) -> Optional[Dict[str, Any]]:
    if segment is None:
        return None
    return {
        "speaker": segment.speaker,
        "text": segment.text,
        "start": segment.start,
        "end": segment.end,
        "index": segment.index,
        "word_count": segment.word_count,
    }


@router.post("/join", response_model=JoinResponse)
async def join_meeting(request: JoinRequest, registry=SessionRegistryDep) -> Dict[str, Any]:
    """
    Send the bot into a meeting.

    Returns the existing session when the meeting is already being captured.
    """
    if not settings.is_supported_url(request.meeting_url):
        raise HTTPBadRequest("Only Google Meet URLs are supported")

    logger.info(f"Starting bot for meeting {request.meeting_id}: {request.meeting_url}")
    try:
        session = await registry.start_session(
            request.meeting_id,
            request.meeting_url,
            bot_name=request.bot_name,
            duration_minutes=request.duration,
        )
    except Exception as e:
        logger.error(f"Join failed: {e}")
        raise HTTPInternalServerError(str(e))

    return {
        "success": True,
        "session_id": session.session_id,
        "meeting_id": session.meeting_id,
        "status": session.status.value,
        "message": "Bot started successfully",
    }


@router.post("/{meeting_id}/stop", response_model=StopResponse)
async def stop_meeting(
    meeting_id: str,
    request: Optional[StopRequest] = Body(default=None),
    registry=SessionRegistryDep,
) -> Dict[str, Any]:
    """Stop a session and return its transcript."""
    reason = (request.reason if request else None) or "user_requested"
    logger.info(f"Stopping bot for meeting {meeting_id} ({reason})")

    session = await registry.stop_session(meeting_id, reason)
    if session is None:
        raise HTTPNotFound("Session not found")

    return {
        "success": session.error is None,
        "session_id": session.session_id,
        "status": session.status.value,
        "transcript": session.transcript,
        "segment_count": session.segment_count,
        "duration": round(session.duration, 2),
        "error": session.error,
    }


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(registry=SessionRegistryDep) -> Dict[str, Any]:
    """List all tracked sessions."""
    sessions = [
        {
            "session_id": s.session_id,
            "meeting_id": s.meeting_id,
            "status": s.status.value,
            "segment_count": s.segment_count,
            "started_at": s.started_at,
        }
        for s in registry.list_sessions()
    ]
    return {"success": True, "sessions": sessions, "count": len(sessions)}


@router.get("/{meeting_id}/status", response_model=StatusResponse)
async def get_status(meeting_id: str, registry=SessionRegistryDep) -> Dict[str, Any]:
    """Current status of one session."""
    session = registry.get_session(meeting_id)
    if session is None:
        raise HTTPNotFound("Session not found")

    return {
        "session_id": session.session_id,
        "meeting_id": session.meeting_id,
        "status": session.status.value,
        "segment_count": session.segment_count,
        "duration": round(session.duration, 2),
        "last_segment": _segment_payload(session.last_segment),
        "error": session.error,
    }
