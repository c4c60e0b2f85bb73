"""
Data models for meeting capture sessions.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, List


UNKNOWN_SPEAKER = "Unknown Speaker"

# ~150 spoken words per minute
WORDS_PER_SECOND = 2.5


class SessionStatus(str, Enum):
    """Lifecycle states of a capture session, in forward order."""
    PENDING = "pending"
    JOINING = "joining"
    WAITING_ADMISSION = "waiting_admission"
    IN_MEETING = "in_meeting"
    RECORDING = "recording"
    LEAVING = "leaving"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = list(SessionStatus)


def count_words(text: str) -> int:
    return len([w for w in text.split() if w])


@dataclass
class Segment:
    """
    One continuous, speaker-attributed utterance.
    Mutable while active in an aggregator, immutable once finalized.
    """
    speaker: str
    text: str
    start: float  # Seconds since capture start
    end: float  # Seconds since capture start
    index: int = 0

    @property
    def word_count(self) -> int:
        return count_words(self.text)

    @property
    def estimated_duration(self) -> float:
        return max(1.0, self.word_count / WORDS_PER_SECOND)

    def copy(self) -> "Segment":
        return replace(self)

    def to_dict(self) -> dict:
        """Convert to the camelCase wire shape used by the agent and the backend."""
        return {
            "speaker": self.speaker,
            "text": self.text,
            "start": round(self.start, 2),
            "end": round(self.end, 2),
            "index": self.index,
            "wordCount": self.word_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Segment":
        return cls(
            speaker=str(data.get("speaker") or UNKNOWN_SPEAKER),
            text=str(data.get("text") or ""),
            start=float(data.get("start") or 0.0),
            end=float(data.get("end") or data.get("start") or 0.0),
            index=int(data.get("index") or 0),
        )


@dataclass
class CaptionFragment:
    """A raw caption observation from one UI mutation."""
    speaker_hint: Optional[str]
    raw_text: str
    observed_at: float = field(default_factory=time.time)


def new_session_id() -> str:
    return f"bot_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


@dataclass
class Session:
    """
    State of one capture session, owned by a single orchestrator.
    Everyone else only ever sees snapshot copies.
    """
    meeting_id: str
    url: str
    session_id: str = field(default_factory=new_session_id)
    status: SessionStatus = SessionStatus.PENDING
    segments: List[Segment] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def duration(self) -> float:
        """Seconds since the bot got into the meeting (frozen at completion)."""
        if not self.started_at:
            return 0.0
        end = self.completed_at or datetime.now()
        return max(0.0, (end - self.started_at).total_seconds())

    @property
    def segment_count(self) -> int:
        return len(self.segments)

    @property
    def last_segment(self) -> Optional[Segment]:
        return self.segments[-1] if self.segments else None

    @property
    def transcript(self) -> str:
        return "\n".join(f"{s.speaker}: {s.text}" for s in self.segments)

    def snapshot(self) -> "Session":
        return replace(self, segments=[s.copy() for s in self.segments])

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "sessionId": self.session_id,
            "meetingId": self.meeting_id,
            "url": self.url,
            "status": self.status.value,
            "segments": [s.to_dict() for s in self.segments],
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


@dataclass
class AudioChunk:
    """A fixed-length encoded audio chunk captured alongside captions."""
    meeting_id: str
    sequence: int
    data: str  # base64
    size: int
    duration: float
    timestamp: int  # Unix timestamp in milliseconds
    mime_type: str = "audio/ogg;codecs=opus"

    def to_dict(self) -> dict:
        return {
            "meetingId": self.meeting_id,
            "sequence": self.sequence,
            "audioData": self.data,
            "size": self.size,
            "duration": self.duration,
            "timestamp": self.timestamp,
            "mimeType": self.mime_type,
        }
