"""
Agent <-> orchestrator protocol: message schemas, channels and the diagnostic text channel.
"""

from .messages import (
    AGENT_SOURCE,
    CONTROLLER_SOURCE,
    AgentEvent,
    CommandType,
    CompletedData,
    ControlCommand,
    EventType,
    FlushData,
    LoadedData,
    SegmentData,
    StatusData,
    make_command,
    make_event,
    parse_command,
    parse_event,
    parse_payload,
)
from .channels import ControlChannel, EventChannel
from .diagnostics import (
    DiagnosticFact,
    DiagnosticKind,
    DiagnosticTap,
    format_caption_line,
    parse_diagnostic_line,
)

__all__ = [
    "AGENT_SOURCE",
    "CONTROLLER_SOURCE",
    "AgentEvent",
    "CommandType",
    "CompletedData",
    "ControlCommand",
    "EventType",
    "FlushData",
    "LoadedData",
    "SegmentData",
    "StatusData",
    "make_command",
    "make_event",
    "parse_command",
    "parse_event",
    "parse_payload",
    "ControlChannel",
    "EventChannel",
    "DiagnosticFact",
    "DiagnosticKind",
    "DiagnosticTap",
    "format_caption_line",
    "parse_diagnostic_line",
]
