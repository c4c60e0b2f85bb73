"""
Exceptions for the Meeting Capture Bot.

Domain errors derive from MeetingCaptureException; the orchestrator turns any
of them into a `failed` session. The HTTP exceptions are only raised by the
REST endpoints.
"""

from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class MeetingCaptureException(Exception):
    """Base exception for Meeting Capture errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class MeetingJoinError(MeetingCaptureException):
    """Raised when the bot cannot get into a meeting."""


class AdmissionTimeoutError(MeetingJoinError):
    """Raised when nobody admits the bot before the join timeout."""

    def __init__(self, timeout: float, meeting_id: Optional[str] = None):
        self.timeout = timeout
        super().__init__(
            f"Timed out waiting for admission after {timeout:.0f}s",
            {"meeting_id": meeting_id, "timeout": timeout},
        )


class BrowserLaunchError(MeetingCaptureException):
    """Raised when the per-session browser cannot be started."""


class ProtocolError(MeetingCaptureException):
    """Raised when a message between orchestrator and agent is malformed."""


class BackendDeliveryError(MeetingCaptureException):
    """Raised when the backend rejects a delivery or cannot be reached."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.path = path
        self.status_code = status_code
        super().__init__(message, {"path": path, "status_code": status_code, **(details or {})})


class ConfigurationError(MeetingCaptureException):
    """Raised when required configuration is missing or invalid."""


# HTTP Exceptions for API responses
class HTTPBadRequest(HTTPException):
    """400 Bad Request"""
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class HTTPNotFound(HTTPException):
    """404 Not Found"""
    def __init__(self, detail: str = "Session not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class HTTPInternalServerError(HTTPException):
    """500 Internal Server Error"""
    def __init__(self, detail: str = "Internal server error"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
