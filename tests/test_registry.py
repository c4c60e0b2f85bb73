"""
Tests for the session registry: one session per meeting, finalize exactly once.
"""

import asyncio
import logging

from conftest import MEETING_URL, FakeMeetingSurface, FakeRelay, make_settings, wait_until
from meet_capture.meeting_handler import MeetingOrchestrator
from meet_capture.models import Segment, Session, SessionStatus
from meet_capture.sessions import SessionRegistry


class SurfaceFactory:
    """Hands out scripted surfaces and counts launches."""

    def __init__(self, **surface_options):
        self.surface_options = surface_options
        self.surfaces = []

    async def __call__(self, bot_settings, session_id):
        surface = FakeMeetingSurface(**self.surface_options)
        self.surfaces.append(surface)
        return surface


def make_registry(relay, surfaces, settings=None):
    settings = settings or make_settings()
    created = []

    def orchestrator_factory(meeting_id, url, listener, session_settings):
        orchestrator = MeetingOrchestrator(
            meeting_id, url, listener=listener, app_settings=session_settings, surface_factory=surfaces,
        )
        created.append(orchestrator)
        return orchestrator

    return SessionRegistry(relay, settings, orchestrator_factory=orchestrator_factory), created


def completed_session(meeting_id="m-1"):
    return Session(
        meeting_id=meeting_id,
        url=MEETING_URL,
        status=SessionStatus.COMPLETED,
        segments=[Segment("Alice", "Hi there, everyone", 0.0, 1.0, 1)],
    )


def test_same_meeting_returns_existing_session():
    relay = FakeRelay()
    surfaces = SurfaceFactory(admit_on_join=False)

    async def scenario():
        registry, created = make_registry(relay, surfaces, make_settings(join_timeout_seconds=5))
        first, second = await asyncio.gather(
            registry.start_session("m-1", MEETING_URL),
            registry.start_session("m-1", MEETING_URL),
        )
        await wait_until(lambda: len(surfaces.surfaces) == 1)
        await registry.shutdown()
        return first, second, created

    first, second, created = asyncio.run(scenario())

    assert first.session_id == second.session_id
    assert len(created) == 1
    assert len(surfaces.surfaces) == 1


def test_session_overrides_apply_per_session():
    relay = FakeRelay()
    surfaces = SurfaceFactory(admit_on_join=False)

    async def scenario():
        registry, created = make_registry(relay, surfaces, make_settings(join_timeout_seconds=5))
        await registry.start_session("m-1", MEETING_URL, bot_name="Scribe", duration_minutes=15)
        bot = created[0].bot_settings
        await registry.shutdown()
        return bot, registry.settings.bot

    bot, defaults = asyncio.run(scenario())

    assert bot.name == "Scribe"
    assert bot.max_duration_minutes == 15
    assert defaults.name != "Scribe"


def test_duplicate_completion_finalizes_once():
    relay = FakeRelay()

    async def scenario():
        registry, _ = make_registry(relay, SurfaceFactory())
        session = completed_session()
        await asyncio.gather(
            registry.on_completed(session, "meeting_ended"),
            registry.on_completed(session, "meeting_ended"),
        )

    asyncio.run(scenario())

    assert len(relay.finalize_calls) == 1


def test_failed_finalize_can_be_retried():
    relay = FakeRelay(finalize_failures=1)

    async def scenario():
        registry, _ = make_registry(relay, SurfaceFactory())
        session = completed_session()
        first = await registry.finalize(session)
        second = await registry.finalize(session)
        third = await registry.finalize(session)
        return first, second, third

    first, second, third = asyncio.run(scenario())

    assert (first, second, third) == (False, True, True)
    assert len(relay.finalize_calls) == 2


def test_completed_session_is_finalized_and_released():
    relay = FakeRelay()
    surfaces = SurfaceFactory()

    async def scenario():
        registry, created = make_registry(relay, surfaces)
        await registry.start_session("m-1", MEETING_URL)
        await wait_until(lambda: created[0].status == SessionStatus.RECORDING)
        await wait_until(lambda: surfaces.surfaces[0].callback is not None)
        await surfaces.surfaces[0].speak("Alice", "Hello everyone, thanks for joining")
        surfaces.surfaces[0].end_meeting()
        await wait_until(lambda: registry.get_session("m-1") is None)
        await registry.shutdown()
        return registry

    registry = asyncio.run(scenario())

    assert len(relay.finalize_calls) == 1
    assert [s.text for s in relay.finalize_calls[0].segments] == ["Hello everyone, thanks for joining"]
    assert ("bot_meeting_ended", "m-1", "meeting_ended") in relay.emitted
    assert registry.active_count == 0


def test_stop_retries_pending_finalize():
    relay = FakeRelay(finalize_failures=1)
    surfaces = SurfaceFactory()

    async def scenario():
        registry, created = make_registry(relay, surfaces)
        await registry.start_session("m-1", MEETING_URL)
        await wait_until(lambda: created[0].status == SessionStatus.RECORDING)
        surfaces.surfaces[0].end_meeting()
        await wait_until(lambda: created[0].is_done and len(relay.finalize_calls) == 1)

        # Still tracked because the backend never took the transcript
        pending = registry.get_session("m-1")
        retried = await registry.stop_session("m-1")
        after = registry.get_session("m-1")
        await registry.shutdown()
        return pending, retried, after

    pending, retried, after = asyncio.run(scenario())

    assert pending.status == SessionStatus.COMPLETED
    assert retried.status == SessionStatus.COMPLETED
    assert len(relay.finalize_calls) == 2
    assert after is None


def test_join_for_unfinalized_meeting_returns_it_with_warning(caplog):
    relay = FakeRelay(finalize_failures=1)
    surfaces = SurfaceFactory()

    async def scenario():
        registry, created = make_registry(relay, surfaces)
        await registry.start_session("m-1", MEETING_URL)
        await wait_until(lambda: created[0].status == SessionStatus.RECORDING)
        surfaces.surfaces[0].end_meeting()
        await wait_until(lambda: created[0].is_done and len(relay.finalize_calls) == 1)

        rejoined = await registry.start_session("m-1", MEETING_URL)
        await registry.shutdown()
        return rejoined, created

    with caplog.at_level(logging.WARNING, logger="meet_capture.session_registry"):
        rejoined, created = asyncio.run(scenario())

    assert rejoined.status == SessionStatus.COMPLETED
    assert len(created) == 1
    assert len(surfaces.surfaces) == 1
    assert "not finalized yet" in caplog.text


def test_failed_join_releases_without_finalize():
    relay = FakeRelay()
    surfaces = SurfaceFactory(admit_on_join=False)

    async def scenario():
        registry, _ = make_registry(relay, surfaces, make_settings(join_timeout_seconds=0.2))
        await registry.start_session("m-1", MEETING_URL)
        await wait_until(lambda: registry.get_session("m-1") is None)

    asyncio.run(scenario())

    assert relay.finalize_calls == []
    assert ("bot_status_change", "m-1", "failed") in relay.emitted


def test_stop_unknown_meeting_returns_none():
    async def scenario():
        registry, _ = make_registry(FakeRelay(), SurfaceFactory())
        return await registry.stop_session("missing")

    assert asyncio.run(scenario()) is None


def test_flush_is_acknowledged_by_relay():
    relay = FakeRelay(segments_ok=False)

    async def scenario():
        registry, _ = make_registry(relay, SurfaceFactory())
        return await registry.on_flush(completed_session(), completed_session().segments)

    assert asyncio.run(scenario()) is False
    assert relay.segment_batches[0][0] == "m-1"


def test_shutdown_stops_all_sessions():
    relay = FakeRelay()
    surfaces = SurfaceFactory()

    async def scenario():
        registry, created = make_registry(relay, surfaces)
        await registry.start_session("m-1", MEETING_URL)
        await registry.start_session("m-2", "https://meet.google.com/xyz-abcd-efg")
        await wait_until(lambda: all(o.status == SessionStatus.RECORDING for o in created))
        await registry.shutdown()
        return registry, created

    registry, created = asyncio.run(scenario())

    assert all(o.status == SessionStatus.COMPLETED for o in created)
    assert sorted(s.meeting_id for s in relay.finalize_calls) == ["m-1", "m-2"]
    assert registry.list_sessions() == []
    assert all(surface.closed for surface in surfaces.surfaces)
