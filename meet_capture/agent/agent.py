"""
Automation Agent

Drives one meeting page: joins, waits for admission, turns captions on and
runs the capture loop until something ends the session. It never calls the
orchestrator; it only reads commands from the control channel and reports
through the event channel and its diagnostic logger.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import Awaitable, Callable, Optional, Set

from meet_capture.agent.page_state import PageState, has_meeting_ended, infer_page_state
from meet_capture.agent.surface import MeetingSurface
from meet_capture.capture import ExitPhraseDetector, SegmentAggregator, is_ui_noise
from meet_capture.config import BotSettings
from meet_capture.core.exceptions import ProtocolError
from meet_capture.core.logging import get_logger
from meet_capture.models import UNKNOWN_SPEAKER, CaptionFragment, SessionStatus
from meet_capture.protocol import (
    CommandType,
    ControlChannel,
    EventChannel,
    EventType,
    format_caption_line,
    make_event,
    parse_command,
)
from meet_capture.protocol.diagnostics import (
    BLOCKED_PHRASE,
    CAPTIONS_ENABLED_PHRASE,
    IN_MEETING_PHRASE,
    JOIN_FAILED_PHRASE,
    JOINED_PHRASE,
    LEAVING_PHRASE,
    MEETING_ENDED_PHRASE,
    RECORDING_PHRASE,
    STOPPED_PHRASE,
)
from meet_capture.utils import jittered


def diagnostic_logger_name(session_id: str) -> str:
    return f"agent.{session_id}"


class AutomationAgent:
    """In-page automation for a single session."""

    def __init__(
        self,
        surface: MeetingSurface,
        control: ControlChannel,
        events: EventChannel,
        bot_settings: BotSettings,
        session_id: str,
    ):
        self.surface = surface
        self.control = control
        self.events = events
        self.settings = bot_settings
        self.session_id = session_id

        # Diagnostic channel; pinned to INFO so the orchestrator's tap sees it
        self.log = get_logger(diagnostic_logger_name(session_id))
        self.log.setLevel("INFO")

        self.aggregator = SegmentAggregator(
            clock=self.elapsed,
            prefix_length=bot_settings.caption_prefix_length,
            min_unresolved_length=bot_settings.min_unresolved_caption_length,
        )
        self.exit_detector = ExitPhraseDetector(bot_settings.exit_phrases)

        self._start_time: Optional[float] = None
        self._last_speaker: Optional[str] = None
        self._started = False
        self._capturing = False
        self._leaving = False
        self._left = asyncio.Event()

        self._join_task: Optional[asyncio.Task] = None
        self._leave_task: Optional[asyncio.Task] = None
        self._timers: Set[asyncio.Task] = set()

    # =========================================================================
    # Command loop
    # =========================================================================

    async def serve(self) -> None:
        """Consume control commands until the channel is closed."""
        try:
            while True:
                raw = await self.control.receive()
                if raw is None:
                    break
                try:
                    command = parse_command(raw)
                except ProtocolError as e:
                    self.log.warning(f"Ignoring command: {e.message}")
                    continue

                if command.type == CommandType.START:
                    if self._started:
                        self.log.debug("Start command ignored, already started")
                        continue
                    self._started = True
                    self._join_task = asyncio.create_task(self.run_bot())
                elif command.type == CommandType.STOP:
                    self.request_leave("stopped")
        finally:
            await self._cancel_background(include_leave=True)

    # =========================================================================
    # Join flow
    # =========================================================================

    async def run_bot(self) -> None:
        """Join, wait for admission and start capturing."""
        try:
            self._emit(EventType.LOADED, {"url": self.surface.url})
            self._send_status(SessionStatus.JOINING)

            await asyncio.sleep(self.settings.page_settle_seconds)
            await self._attempt("Mute media", self.surface.mute_media)
            await self.human_delay()
            await self._attempt("Dismiss overlays", self.surface.dismiss_overlays, attempts=1)
            await self.human_delay()

            if not await self._attempt("Click join", self.surface.click_join):
                self.log.warning("No join button found, waiting in case the page auto-joins")

            self._send_status(SessionStatus.WAITING_ADMISSION)

            if not await self.wait_until_joined():
                return

            self._start_time = time.monotonic()
            self.log.info(JOINED_PHRASE)
            self._send_status(SessionStatus.IN_MEETING)
            self.log.info(IN_MEETING_PHRASE)

            if await self._attempt("Enable captions", self.surface.enable_captions):
                self.log.info(CAPTIONS_ENABLED_PHRASE)

            if self.settings.announcement:
                await self.human_delay()
                await self._attempt(
                    "Send announcement",
                    lambda: self.surface.send_chat_message(self.settings.announcement),
                )

            await self.start_capture()
            self._send_status(SessionStatus.RECORDING)
            self.log.info(RECORDING_PHRASE)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.log.error(f"{JOIN_FAILED_PHRASE}: {e}")
            self._send_status(SessionStatus.FAILED, error=str(e))

    async def wait_until_joined(self, timeout: Optional[float] = None) -> bool:
        """
        Poll the page until it shows we were admitted.

        Returns False on an explicit rejection or when the timeout passes;
        an ambiguous page just means keep waiting.
        """
        timeout = self.settings.join_timeout_seconds if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        last_state: Optional[PageState] = None

        while loop.time() < deadline:
            try:
                indicators = await self.surface.read_indicators()
                state = infer_page_state(indicators)
            except Exception as e:
                self.log.debug(f"Could not read page state: {e}")
                state = PageState.UNKNOWN

            if state == PageState.IN_MEETING:
                return True
            if state == PageState.REJECTED:
                self.log.error(BLOCKED_PHRASE)
                self._send_status(SessionStatus.FAILED, error="Blocked from joining the meeting")
                return False

            if state != last_state:
                self.log.debug(f"Page state: {state.value}")
                last_state = state

            await asyncio.sleep(jittered(self.settings.join_poll_interval_seconds))

        message = f"Timed out waiting for admission after {timeout:.0f}s"
        self.log.error(f"{JOIN_FAILED_PHRASE}: {message}")
        self._send_status(SessionStatus.FAILED, error=message)
        return False

    # =========================================================================
    # Capture loop
    # =========================================================================

    async def start_capture(self) -> None:
        self._capturing = True
        await self.surface.start_caption_observer(self.on_caption_mutation)
        self._spawn(self._flush_loop())
        self._spawn(self._watch_for_meeting_end())
        self._spawn(self._max_duration_timer())
        self.log.info("Caption observer started")

    async def on_caption_mutation(self, speaker_hint: Optional[str], raw_text: str) -> None:
        """Observer callback: one caption mutation from the page."""
        await self.handle_fragment(CaptionFragment(speaker_hint=speaker_hint, raw_text=raw_text))

    async def handle_fragment(self, fragment: CaptionFragment) -> None:
        if not self._capturing or self._leaving:
            return

        text = (fragment.raw_text or "").strip()
        speaker = (fragment.speaker_hint or "").strip()
        if not speaker or speaker == UNKNOWN_SPEAKER:
            speaker = self._last_speaker or UNKNOWN_SPEAKER

        if is_ui_noise(text, self.settings.name):
            return

        phrase = self.exit_detector.match(text)
        if phrase:
            self.log.info(f"Exit phrase detected ('{phrase}'), leaving meeting...")
            self.request_leave("exit_phrase")
            return

        segment = self.aggregator.observe(speaker, text)
        if segment is None:
            return

        if speaker != UNKNOWN_SPEAKER:
            self._last_speaker = speaker

        self._emit(EventType.CAPTION, segment.to_dict())
        self.log.info(format_caption_line(segment.speaker, segment.text))

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.flush_interval_seconds)
            self.flush()

    def flush(self, terminal: bool = False) -> bool:
        """Publish unflushed segments; they only count as flushed once someone received them."""
        batch = self.aggregator.snapshot_for_flush()
        if not batch:
            return True
        delivered = self._emit(EventType.FLUSH, {
            "segments": [s.to_dict() for s in batch],
            "count": self.aggregator.count,
            "duration": self.elapsed(),
        })
        if delivered:
            self.aggregator.mark_flushed(terminal=terminal)
        else:
            self.log.warning(f"Flush of {len(batch)} segments not received, will retry")
        return delivered

    async def _watch_for_meeting_end(self) -> None:
        while True:
            await asyncio.sleep(self.settings.end_check_interval_seconds)
            try:
                indicators = await self.surface.read_indicators()
            except Exception as e:
                self.log.debug(f"Could not read page state: {e}")
                continue
            if has_meeting_ended(indicators):
                self.log.info(MEETING_ENDED_PHRASE)
                self.request_leave("meeting_ended")
                return

    async def _max_duration_timer(self) -> None:
        await asyncio.sleep(self.settings.max_duration_seconds)
        self.log.info("Max duration reached")
        self.request_leave("max_duration")

    # =========================================================================
    # Termination
    # =========================================================================

    def request_leave(self, reason: str) -> Optional[asyncio.Task]:
        """Schedule the leave sequence; later requests are ignored."""
        if self._leaving or self._leave_task is not None:
            self.log.debug(f"Leave already in progress, ignoring '{reason}'")
            return None
        self._leave_task = asyncio.create_task(self.leave_meeting(reason))
        return self._leave_task

    async def leave_meeting(self, reason: str) -> bool:
        """
        Stop capture, close all segments, leave the call and report completion.
        Runs at most once per agent; returns False when it already ran.
        """
        if self._leaving:
            return False
        self._leaving = True
        self._capturing = False

        self.log.info(f"{LEAVING_PHRASE}: {reason}")
        self._send_status(SessionStatus.LEAVING, reason=reason)

        if self._join_task and self._join_task is not asyncio.current_task():
            self._join_task.cancel()
        await self._cancel_background()

        try:
            await self.surface.stop_caption_observer()
        except Exception as e:
            self.log.warning(f"Could not stop caption observer: {e}")

        self.flush(terminal=True)
        final_segments = self.aggregator.close_all()

        if self._start_time is not None:
            await self._attempt("Leave call", self.surface.click_leave)

        self._emit(EventType.COMPLETED, {
            "reason": reason,
            "segments": [s.to_dict() for s in final_segments],
            "segmentCount": len(final_segments),
            "duration": self.elapsed(),
        })
        self.log.info(f"{STOPPED_PHRASE}, total segments: {len(final_segments)}")
        self._left.set()
        return True

    async def wait_until_left(self) -> None:
        await self._left.wait()

    @property
    def has_left(self) -> bool:
        return self._left.is_set()

    # =========================================================================
    # Helpers
    # =========================================================================

    def elapsed(self) -> float:
        """Seconds since the bot got into the meeting."""
        if self._start_time is None:
            return 0.0
        return time.monotonic() - self._start_time

    async def human_delay(self) -> None:
        low = self.settings.human_delay_min_ms
        high = max(low, self.settings.human_delay_max_ms)
        await asyncio.sleep(random.uniform(low, high) / 1000)

    async def _attempt(
        self,
        label: str,
        action: Callable[[], Awaitable[bool]],
        attempts: Optional[int] = None,
    ) -> bool:
        """Run a UI action with bounded, jittered retries; failure is logged, never raised."""
        attempts = attempts or self.settings.ui_action_attempts
        for attempt in range(1, attempts + 1):
            try:
                if await action():
                    return True
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.log.warning(f"{label} attempt {attempt}/{attempts} failed: {e}")
            if attempt < attempts:
                await self.human_delay()
        self.log.warning(f"{label} did not succeed after {attempts} attempt(s), continuing")
        return False

    def _emit(self, event_type: EventType, data: Optional[dict] = None) -> bool:
        return self.events.publish(make_event(event_type, data))

    def _send_status(self, status: SessionStatus, **extra) -> bool:
        data = {"status": status.value}
        data.update({k: v for k, v in extra.items() if v is not None})
        return self._emit(EventType.STATUS, data)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)
        return task

    async def _cancel_background(self, include_leave: bool = False) -> None:
        current = asyncio.current_task()
        tasks = [t for t in self._timers if t is not current]
        if include_leave:
            for task in (self._join_task, self._leave_task):
                if task and task is not current and not task.done():
                    tasks.append(task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                self.log.debug(f"Background task ended with error: {e}")
