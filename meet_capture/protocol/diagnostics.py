"""
Diagnostic text channel.

The agent narrates what it is doing through its logger. Those lines carry
the same facts as the structured events (status keywords, "[Caption]
speaker: text"), and unlike a structured message they cannot be missed: the
tap buffers everything it sees so it can be parsed again later.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, List, Optional

from meet_capture.models import SessionStatus


# Phrases the agent logs; kept here so both sides agree on them
JOINED_PHRASE = "Successfully joined meeting"
IN_MEETING_PHRASE = "IN_MEETING status sent"
RECORDING_PHRASE = "Bot is now recording"
CAPTIONS_ENABLED_PHRASE = "Captions enabled"
MEETING_ENDED_PHRASE = "Meeting ended detected"
LEAVING_PHRASE = "Leaving meeting"
JOIN_FAILED_PHRASE = "Could not join meeting"
BLOCKED_PHRASE = "Blocked from joining"
STOPPED_PHRASE = "Bot stopped"

CAPTION_PATTERN = re.compile(r"\[Caption\]\s*(.+?):\s*(.+)")
LEAVING_PATTERN = re.compile(re.escape(LEAVING_PHRASE) + r":?\s*(\w+)?")


class DiagnosticKind(str, Enum):
    STATUS = "status"
    CAPTIONS_ENABLED = "captions_enabled"
    MEETING_ENDED = "meeting_ended"
    JOIN_FAILED = "join_failed"
    AGENT_STOPPED = "agent_stopped"
    CAPTION = "caption"


@dataclass
class DiagnosticFact:
    """One fact recovered from a diagnostic line."""
    kind: DiagnosticKind
    status: Optional[SessionStatus] = None
    speaker: Optional[str] = None
    text: Optional[str] = None
    reason: Optional[str] = None


def format_caption_line(speaker: str, text: str) -> str:
    return f"[Caption] {speaker}: {text}"


def parse_diagnostic_line(line: str) -> List[DiagnosticFact]:
    """Recover status and caption facts from one line of agent output."""
    facts: List[DiagnosticFact] = []
    if not line:
        return facts

    # Spoken text may contain any phrase, so caption lines carry nothing else
    caption = CAPTION_PATTERN.search(line)
    if caption:
        facts.append(DiagnosticFact(
            DiagnosticKind.CAPTION,
            speaker=caption.group(1).strip(),
            text=caption.group(2).strip(),
        ))
        return facts

    if IN_MEETING_PHRASE in line or JOINED_PHRASE in line:
        facts.append(DiagnosticFact(DiagnosticKind.STATUS, status=SessionStatus.IN_MEETING))
    elif RECORDING_PHRASE in line:
        facts.append(DiagnosticFact(DiagnosticKind.STATUS, status=SessionStatus.RECORDING))
    elif CAPTIONS_ENABLED_PHRASE in line:
        facts.append(DiagnosticFact(DiagnosticKind.CAPTIONS_ENABLED))
    elif MEETING_ENDED_PHRASE in line:
        facts.append(DiagnosticFact(DiagnosticKind.MEETING_ENDED, reason="meeting_ended"))
    elif LEAVING_PHRASE in line:
        match = LEAVING_PATTERN.search(line)
        reason = match.group(1) if match and match.group(1) else "meeting_ended"
        facts.append(DiagnosticFact(DiagnosticKind.MEETING_ENDED, reason=reason))
    elif JOIN_FAILED_PHRASE in line or BLOCKED_PHRASE in line:
        facts.append(DiagnosticFact(DiagnosticKind.JOIN_FAILED, reason=line.strip()))
    elif STOPPED_PHRASE in line:
        facts.append(DiagnosticFact(DiagnosticKind.AGENT_STOPPED))

    return facts


class DiagnosticTap(logging.Handler):
    """
    Logging handler attached to an agent's diagnostic logger.
    Forwards every line to a callback and keeps a bounded replay buffer.
    """

    def __init__(self, on_line: Callable[[str], None], buffer_size: int = 1000):
        super().__init__(level=logging.DEBUG)
        self.on_line = on_line
        self.lines: Deque[str] = deque(maxlen=buffer_size)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = record.getMessage()
        except Exception:
            self.handleError(record)
            return
        self.lines.append(line)
        self.on_line(line)

    def replay(self) -> List[DiagnosticFact]:
        """Parse everything captured so far."""
        facts: List[DiagnosticFact] = []
        for line in list(self.lines):
            facts.extend(parse_diagnostic_line(line))
        return facts
