"""
In-page automation agent and the page surfaces it drives.
"""

from .agent import AutomationAgent, diagnostic_logger_name
from .page_state import (
    PageIndicators,
    PageState,
    has_meeting_ended,
    infer_page_state,
    is_in_meeting,
)
from .surface import CaptionCallback, MeetingSurface

__all__ = [
    "AutomationAgent",
    "diagnostic_logger_name",
    "PageIndicators",
    "PageState",
    "has_meeting_ended",
    "infer_page_state",
    "is_in_meeting",
    "CaptionCallback",
    "MeetingSurface",
]
