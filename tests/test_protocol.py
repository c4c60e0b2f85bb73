"""
Tests for the agent/orchestrator message protocol and diagnostic channel.
"""

import asyncio
import logging

import pytest

from meet_capture.core.exceptions import ProtocolError
from meet_capture.models import SessionStatus
from meet_capture.protocol import (
    AGENT_SOURCE,
    CommandType,
    CompletedData,
    ControlChannel,
    DiagnosticKind,
    DiagnosticTap,
    EventChannel,
    EventType,
    StatusData,
    format_caption_line,
    make_command,
    make_event,
    parse_command,
    parse_diagnostic_line,
    parse_event,
    parse_payload,
)


# =========================================================================
# Messages
# =========================================================================

def test_command_roundtrip():
    command = parse_command(make_command(CommandType.STOP))

    assert command.type == CommandType.STOP


def test_command_from_unknown_source_is_rejected():
    with pytest.raises(ProtocolError):
        parse_command({"source": "some-extension", "type": "start"})


def test_unknown_command_type_is_rejected():
    with pytest.raises(ProtocolError):
        parse_command({"source": "meet-capture-controller", "type": "explode"})


def test_event_envelope_carries_source_and_timestamp():
    raw = make_event(EventType.STATUS, {"status": "recording"})

    assert raw["source"] == AGENT_SOURCE
    assert raw["type"] == "status"
    assert raw["timestamp"] > 0


def test_event_ignores_extra_fields():
    raw = make_event(EventType.STATUS, {"status": "joining"})
    raw["unexpected"] = "value"

    event = parse_event(raw)
    data = parse_payload(StatusData, event)

    assert data.status == "joining"
    assert data.detail is None


def test_event_with_unknown_type_is_rejected():
    with pytest.raises(ProtocolError):
        parse_event({"source": AGENT_SOURCE, "type": "telemetry", "data": {}})


def test_invalid_payload_raises_protocol_error():
    event = parse_event(make_event(EventType.STATUS, {"message": "no status"}))

    with pytest.raises(ProtocolError):
        parse_payload(StatusData, event)


def test_completed_payload_converts_segments():
    event = parse_event(make_event(EventType.COMPLETED, {
        "reason": "exit_phrase",
        "segments": [{"speaker": "Alice", "text": "Hi there", "start": 0, "end": 1.5, "index": 1, "wordCount": 2}],
        "segmentCount": 1,
        "duration": 12.0,
    }))

    data = parse_payload(CompletedData, event)
    segment = data.segments[0].to_segment()

    assert data.reason == "exit_phrase"
    assert segment.speaker == "Alice"
    assert segment.end == 1.5


def test_status_detail_prefers_error():
    data = StatusData(status="failed", message="Join failed", error="Timed out")

    assert data.detail == "Timed out"


# =========================================================================
# Diagnostic lines
# =========================================================================

def test_caption_line_is_parsed():
    facts = parse_diagnostic_line(format_caption_line("Alice", "Hi there, everyone"))

    assert len(facts) == 1
    assert facts[0].kind == DiagnosticKind.CAPTION
    assert facts[0].speaker == "Alice"
    assert facts[0].text == "Hi there, everyone"


def test_caption_containing_status_phrase_is_only_a_caption():
    facts = parse_diagnostic_line(format_caption_line("Bob", "I think the Bot is now recording everything"))

    assert [f.kind for f in facts] == [DiagnosticKind.CAPTION]


@pytest.mark.parametrize("line,status", [
    ("✅ Successfully joined meeting", SessionStatus.IN_MEETING),
    ("IN_MEETING status sent", SessionStatus.IN_MEETING),
    ("🔴 Bot is now recording", SessionStatus.RECORDING),
])
def test_status_lines(line, status):
    facts = parse_diagnostic_line(line)

    assert facts[0].kind == DiagnosticKind.STATUS
    assert facts[0].status == status


def test_leaving_line_carries_reason():
    facts = parse_diagnostic_line("Leaving meeting: exit_phrase")

    assert facts[0].kind == DiagnosticKind.MEETING_ENDED
    assert facts[0].reason == "exit_phrase"


def test_join_failure_lines():
    timed_out = parse_diagnostic_line("Could not join meeting: Timed out waiting for admission after 5s")
    blocked = parse_diagnostic_line("Blocked from joining")

    assert timed_out[0].kind == DiagnosticKind.JOIN_FAILED
    assert "Timed out" in timed_out[0].reason
    assert blocked[0].kind == DiagnosticKind.JOIN_FAILED


def test_unrelated_lines_carry_no_facts():
    assert parse_diagnostic_line("Clicking join button") == []
    assert parse_diagnostic_line("") == []


def test_diagnostic_tap_forwards_and_replays():
    received = []
    tap = DiagnosticTap(received.append, buffer_size=2)
    logger = logging.getLogger("meet_capture.agent.test-tap")
    logger.setLevel(logging.INFO)
    logger.addHandler(tap)
    try:
        logger.info("Captions enabled")
        logger.info("Bot is now recording")
        logger.info("[Caption] Alice: Hello everyone")
    finally:
        logger.removeHandler(tap)

    assert received == ["Captions enabled", "Bot is now recording", "[Caption] Alice: Hello everyone"]
    # Bounded buffer keeps the newest lines
    kinds = [f.kind for f in tap.replay()]
    assert kinds == [DiagnosticKind.STATUS, DiagnosticKind.CAPTION]


# =========================================================================
# Channels
# =========================================================================

def test_publish_without_subscribers_is_lost():
    channel = EventChannel()

    assert channel.publish({"type": "status"}) is False
    assert not channel.has_subscribers


def test_publish_reaches_every_subscriber():
    channel = EventChannel()
    first = channel.subscribe()
    second = channel.subscribe()

    assert channel.publish({"type": "status"}) is True
    assert first.get_nowait() == {"type": "status"}
    assert second.get_nowait() == {"type": "status"}

    channel.unsubscribe(first)
    channel.unsubscribe(second)
    assert channel.publish({"type": "status"}) is False


def test_control_channel_close_ends_receive():
    async def scenario():
        channel = ControlChannel()
        assert channel.send({"type": "start"}) is True
        channel.close()

        first = await channel.receive()
        second = await channel.receive()
        return first, second, channel.send({"type": "stop"})

    first, second, sent_after_close = asyncio.run(scenario())

    assert first == {"type": "start"}
    assert second is None
    assert sent_after_close is False
