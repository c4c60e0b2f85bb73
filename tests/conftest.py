"""Shared fixtures: a scripted meeting page, a recording relay and fast settings."""

import asyncio
import os

# Keep test runs from writing log files
os.environ.setdefault("LOG_TO_FILE", "false")

import pytest

from meet_capture.agent.page_state import PageIndicators
from meet_capture.agent.surface import MeetingSurface
from meet_capture.config import AudioSettings, BackendSettings, BotSettings, Settings
from meet_capture.core.exceptions import BackendDeliveryError


MEETING_URL = "https://meet.google.com/abc-defg-hij"


class FakeMeetingSurface(MeetingSurface):
    """Scripted stand-in for the meeting page."""

    def __init__(self, admit_on_join=True, reject_on_join=False, leave_hangs=False, mute_error=None):
        self.indicators = PageIndicators(body_text="Asking to be let in")
        self.admit_on_join = admit_on_join
        self.reject_on_join = reject_on_join
        self.leave_hangs = leave_hangs
        self.mute_error = mute_error

        self.opened = []
        self.mute_calls = 0
        self.join_clicks = 0
        self.leave_clicks = 0
        self.chat_messages = []
        self.closed = False
        self.callback = None

    @property
    def url(self):
        return self.opened[-1] if self.opened else ""

    # Scripting helpers

    def admit(self):
        self.indicators = PageIndicators(meeting_code_text="abc-defg-hij", body_text="Meeting details")

    def reject(self):
        self.indicators = PageIndicators(body_text="You can't join this call")

    def end_meeting(self):
        self.indicators = PageIndicators(body_text="You left the meeting. Return to home screen")

    async def speak(self, speaker, text):
        assert self.callback is not None, "caption observer not started"
        await self.callback(speaker, text)

    # MeetingSurface

    async def open(self, url):
        self.opened.append(url)

    async def read_indicators(self):
        return self.indicators

    async def mute_media(self):
        self.mute_calls += 1
        if self.mute_error:
            raise self.mute_error
        return True

    async def dismiss_overlays(self):
        return False

    async def click_join(self):
        self.join_clicks += 1
        if self.reject_on_join:
            self.reject()
        elif self.admit_on_join:
            self.admit()
        return True

    async def enable_captions(self):
        return True

    async def send_chat_message(self, message):
        self.chat_messages.append(message)
        return True

    async def click_leave(self):
        self.leave_clicks += 1
        if self.leave_hangs:
            await asyncio.sleep(3600)
        return True

    async def start_caption_observer(self, callback):
        self.callback = callback

    async def stop_caption_observer(self):
        self.callback = None

    async def close(self):
        self.closed = True


class FakeRelay:
    """Records everything the registry asks the backend relay to do."""

    def __init__(self, finalize_failures=0, segments_ok=True):
        self.finalize_failures = finalize_failures
        self.segments_ok = segments_ok
        self.emitted = []
        self.segment_batches = []
        self.finalize_calls = []
        self.closed = False

    @property
    def push_connected(self):
        return False

    async def emit_status(self, session, message=None):
        self.emitted.append(("bot_status_change", session.meeting_id, session.status.value))
        return False

    async def emit_caption(self, meeting_id, segment):
        self.emitted.append(("caption_added", meeting_id, segment.text))
        return False

    async def emit_meeting_ended(self, session, reason):
        self.emitted.append(("bot_meeting_ended", session.meeting_id, reason))
        return False

    async def emit_audio_chunk(self, chunk):
        self.emitted.append(("audio_chunk", chunk.meeting_id, chunk.sequence))
        return False

    async def send_segments(self, meeting_id, segments):
        self.segment_batches.append((meeting_id, segments))
        return self.segments_ok

    async def finalize_meeting(self, session):
        # Yield so concurrent callers really overlap
        await asyncio.sleep(0)
        self.finalize_calls.append(session)
        if self.finalize_failures > 0:
            self.finalize_failures -= 1
            raise BackendDeliveryError("backend unavailable")
        return {"success": True}

    async def close(self):
        self.closed = True


def make_settings(**bot_overrides):
    bot_values = dict(
        join_timeout_seconds=2.0,
        max_duration_minutes=60,
        flush_interval_seconds=30.0,
        leave_grace_seconds=0.5,
        page_settle_seconds=0,
        join_poll_interval_seconds=0.01,
        end_check_interval_seconds=0.02,
        human_delay_min_ms=0,
        human_delay_max_ms=0,
        ui_action_attempts=2,
        announcement="",
    )
    bot_values.update(bot_overrides)
    return Settings(
        bot=BotSettings(**bot_values),
        backend=BackendSettings(push_enabled=False, delivery_retries=1, delivery_retry_delay=0),
        audio=AudioSettings(enabled=False),
        log_to_file=False,
    )


async def wait_until(predicate, timeout=3.0, interval=0.01):
    """Poll predicate until it holds; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(interval)


def drain(queue):
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


@pytest.fixture
def fast_settings():
    return make_settings()


@pytest.fixture
def surface():
    return FakeMeetingSurface()


@pytest.fixture
def relay():
    return FakeRelay()
