"""
Page-state inference.

The meeting application never tells us whether we have been admitted, so the
state is inferred from what is visible on the page. Everything here is a pure
function over a `PageIndicators` snapshot; the polling lives in the agent.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


# Meeting code (abc-defg-hij) only renders once the call UI is up
MEETING_CODE_PATTERN = re.compile(r"[A-Z]{3}-[a-z]{4}-[A-Z]{3}", re.I)

WAITING_ROOM_TEXTS = (
    "Please wait until a meeting host brings you into the call",
    "Asking to be let in",
    "Waiting for the host",
    "Harap tunggu hingga penyelenggara rapat membawa Anda ke panggilan",
    "Menunggu persetujuan",
    "Tunggu sampai host",
)

REJECTION_TEXTS = (
    "You can't join this call",
    "tidak dapat bergabung",
    "denied",
)

MEETING_ENDED_TEXTS = (
    "You left the meeting",
    "You've left the call",
    "Return to home screen",
    "Anda telah keluar",
    "Anda meninggalkan rapat",
    "Kembali ke layar utama",
)

HOST_ENDED_TEXTS = (
    "host ended the meeting for everyone",
    "Penyelenggara mengakhiri rapat",
)


@dataclass
class PageIndicators:
    """Raw observations read from the page in one poll."""
    meeting_code_text: Optional[str] = None
    waiting_room_element: bool = False
    body_text: str = ""
    end_heading_text: Optional[str] = None
    captions_visible: bool = False


class PageState(str, Enum):
    IN_MEETING = "in_meeting"
    WAITING = "waiting"
    REJECTED = "rejected"
    ENDED = "ended"
    UNKNOWN = "unknown"


def is_in_meeting(indicators: PageIndicators) -> bool:
    """
    Positive signal wins; an explicit waiting-room signal or an ambiguous
    page both mean "not yet".
    """
    code = indicators.meeting_code_text or ""
    if MEETING_CODE_PATTERN.search(code):
        return True
    return False


def is_waiting(indicators: PageIndicators) -> bool:
    if indicators.waiting_room_element:
        return True
    return any(text in indicators.body_text for text in WAITING_ROOM_TEXTS)


def is_rejected(indicators: PageIndicators) -> bool:
    return any(text in indicators.body_text for text in REJECTION_TEXTS)


def has_meeting_ended(indicators: PageIndicators) -> bool:
    heading = indicators.end_heading_text or ""
    if any(text in heading for text in HOST_ENDED_TEXTS):
        return True
    return any(text in indicators.body_text for text in MEETING_ENDED_TEXTS)


def infer_page_state(indicators: PageIndicators) -> PageState:
    """Reduce one snapshot of indicators to a single page state."""
    if is_in_meeting(indicators):
        return PageState.IN_MEETING
    if is_waiting(indicators):
        return PageState.WAITING
    if is_rejected(indicators):
        return PageState.REJECTED
    if has_meeting_ended(indicators):
        return PageState.ENDED
    return PageState.UNKNOWN
