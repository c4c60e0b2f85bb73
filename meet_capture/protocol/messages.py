"""
Cross-context message schemas.

Commands travel orchestrator -> agent, events travel agent -> orchestrator.
Both sides exchange plain dicts and validate on receipt, since either side
may see duplicates, stale messages or messages from somebody else.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from meet_capture.core.exceptions import ProtocolError
from meet_capture.models import Segment


AGENT_SOURCE = "meet-capture-agent"
CONTROLLER_SOURCE = "meet-capture-controller"


def now_ms() -> int:
    return int(time.time() * 1000)


class CommandType(str, Enum):
    START = "start"
    STOP = "stop"


class EventType(str, Enum):
    LOADED = "loaded"
    STATUS = "status"
    CAPTION = "caption"
    FLUSH = "flush"
    COMPLETED = "completed"


class ControlCommand(BaseModel):
    """Orchestrator -> agent command."""
    model_config = ConfigDict(extra="ignore")

    source: Literal["meet-capture-controller"] = CONTROLLER_SOURCE
    type: CommandType


class AgentEvent(BaseModel):
    """Agent -> orchestrator event envelope."""
    model_config = ConfigDict(extra="ignore")

    source: Literal["meet-capture-agent"] = AGENT_SOURCE
    type: EventType
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=now_ms)


# =========================================================================
# Event payloads
# =========================================================================

class SegmentData(BaseModel):
    """Segment-shaped payload (camelCase, as produced by Segment.to_dict)."""
    model_config = ConfigDict(extra="ignore")

    speaker: str
    text: str
    start: float = 0.0
    end: float = 0.0
    index: int = 0
    wordCount: Optional[int] = None

    def to_segment(self) -> Segment:
        return Segment.from_dict(self.model_dump())


class LoadedData(BaseModel):
    url: str = ""


class StatusData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str
    message: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None

    @property
    def detail(self) -> Optional[str]:
        return self.error or self.message or self.reason


class FlushData(BaseModel):
    segments: List[SegmentData] = Field(default_factory=list)
    count: int = 0
    duration: float = 0.0


class CompletedData(BaseModel):
    reason: str = "meeting_ended"
    segments: List[SegmentData] = Field(default_factory=list)
    segmentCount: int = 0
    duration: float = 0.0


# =========================================================================
# Helpers
# =========================================================================

def make_command(command_type: CommandType) -> dict:
    return ControlCommand(type=command_type).model_dump(mode="json")


def make_event(event_type: EventType, data: Optional[dict] = None) -> dict:
    return AgentEvent(type=event_type, data=data or {}).model_dump(mode="json")


def parse_command(raw: Any) -> ControlCommand:
    """Validate an inbound command; anything not from the controller is rejected."""
    try:
        return ControlCommand.model_validate(raw)
    except ValidationError as e:
        raise ProtocolError("Invalid control command", {"raw": raw, "errors": e.errors()}) from e


def parse_event(raw: Any) -> AgentEvent:
    """Validate an inbound event envelope."""
    try:
        return AgentEvent.model_validate(raw)
    except ValidationError as e:
        raise ProtocolError("Invalid agent event", {"raw": raw, "errors": e.errors()}) from e


def parse_payload(model: type[BaseModel], event: AgentEvent) -> BaseModel:
    """Validate an event's data against its payload model."""
    try:
        return model.model_validate(event.data)
    except ValidationError as e:
        raise ProtocolError(
            f"Invalid {event.type.value} payload", {"data": event.data, "errors": e.errors()}
        ) from e
