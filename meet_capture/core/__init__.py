"""
Core module exports.
"""

from .logging import get_logger, get_meeting_logger, setup_logging
from .exceptions import (
    MeetingCaptureException,
    MeetingJoinError,
    AdmissionTimeoutError,
    BrowserLaunchError,
    ProtocolError,
    BackendDeliveryError,
    ConfigurationError,
)

__all__ = [
    "get_logger",
    "get_meeting_logger",
    "setup_logging",
    "MeetingCaptureException",
    "MeetingJoinError",
    "AdmissionTimeoutError",
    "BrowserLaunchError",
    "ProtocolError",
    "BackendDeliveryError",
    "ConfigurationError",
]
