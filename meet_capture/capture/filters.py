"""
Caption noise filtering and exit-phrase detection.

The caption observer watches the whole document, so every button label,
icon ligature and system banner that changes shows up as a "caption".
These patterns reject the known offenders before text reaches the aggregator.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Pattern


UI_NOISE_PATTERNS: List[Pattern[str]] = [
    re.compile(r"you left the meeting|return to home screen|leave call|feedback", re.I),
    re.compile(r"audio and video|learn more|you've left", re.I),
    re.compile(r"you're the only one here|waiting for others|someone has already admitted", re.I),
    re.compile(r"presenting now", re.I),
    re.compile(r"^Meeting details$", re.I),
    re.compile(r"^Share screen$", re.I),
    re.compile(r"^Send a reaction$", re.I),
    re.compile(r"^Turn on captions", re.I),
    re.compile(r"^Raise hand", re.I),
    re.compile(r"^Chat with everyone$", re.I),
    re.compile(r"^Meeting tools$", re.I),
    re.compile(r"^Call ends soon$", re.I),
    re.compile(r"^More options$", re.I),
    re.compile(r"^People\d*$", re.I),
    re.compile(r"^Meeting timer$", re.I),
    re.compile(r"^Hand raises$", re.I),
    re.compile(r"This call is open to anyone", re.I),
    # Material icon ligatures
    re.compile(r"^(info|chat|apps|alarm|mood|meeting_room)$", re.I),
    re.compile(r"^(computer_arrow_up|computer_arrow_down)$", re.I),
    re.compile(r"^(back_hand|closed_caption|closed_caption_off)$", re.I),
    re.compile(r"^(arrow_drop_down|chat_bubble|epg-)$", re.I),
    re.compile(r"^[a-z_]+$"),
    re.compile(r"^Press Down Arrow", re.I),
    re.compile(r"hover tray|Escape to close", re.I),
    re.compile(r"^.{0,2}$", re.S),
    # Caption language picker
    re.compile(r"^(English|Indonesian)(\s*\(.*\))?$", re.I),
]


def is_ui_noise(text: str, bot_name: Optional[str] = None) -> bool:
    """Return True when text looks like UI chrome rather than speech."""
    candidate = (text or "").strip()
    if not candidate:
        return True
    if bot_name and candidate.lower() == bot_name.strip().lower():
        return True
    return any(pattern.search(candidate) for pattern in UI_NOISE_PATTERNS)


class ExitPhraseDetector:
    """Case-insensitive substring match against a configured phrase list."""

    def __init__(self, phrases: Iterable[str]):
        self.phrases = [p.strip().lower() for p in phrases if p and p.strip()]

    def match(self, text: str) -> Optional[str]:
        """Return the first phrase contained in text, if any."""
        normalized = (text or "").lower()
        for phrase in self.phrases:
            if phrase in normalized:
                return phrase
        return None

    def __contains__(self, text: str) -> bool:
        return self.match(text) is not None
