"""
Meeting Orchestrator

Owns one capture session end to end: launches its browser, drives the agent
through the control channel and rebuilds the session state from whatever the
agent reports. Agent facts arrive twice (structured events and diagnostic
log lines) in no guaranteed order, so every handler is "apply if not already
applied" against the session's state machine.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
import time
from typing import Awaitable, Callable, Dict, List, Optional, Set

from meet_capture.agent import AutomationAgent, MeetingSurface
from meet_capture.capture import SegmentAggregator
from meet_capture.config import BotSettings, Settings, settings as default_settings
from meet_capture.core.exceptions import AdmissionTimeoutError, ProtocolError
from meet_capture.core.logging import get_meeting_logger
from meet_capture.models import AudioChunk, Segment, Session, SessionStatus
from meet_capture.utils import format_duration
from meet_capture.protocol import (
    AgentEvent,
    CommandType,
    CompletedData,
    ControlChannel,
    DiagnosticFact,
    DiagnosticKind,
    DiagnosticTap,
    EventChannel,
    EventType,
    FlushData,
    LoadedData,
    SegmentData,
    StatusData,
    make_command,
    parse_diagnostic_line,
    parse_event,
    parse_payload,
)


SurfaceFactory = Callable[[BotSettings, str], Awaitable[MeetingSurface]]


async def _default_surface_factory(bot_settings: BotSettings, session_id: str) -> MeetingSurface:
    from meet_capture.agent.meet_page import launch_meet_surface
    return await launch_meet_surface(bot_settings, session_id)


class OrchestratorListener:
    """
    Receives session notifications from an orchestrator.
    Every callback gets a snapshot; the orchestrator keeps the live session.
    """

    async def on_status(self, session: Session) -> None:
        pass

    async def on_caption(self, session: Session, segment: Segment) -> None:
        pass

    async def on_flush(self, session: Session, segments: List[Segment]) -> bool:
        """Return True once the batch is safely delivered."""
        return True

    async def on_completed(self, session: Session, reason: str) -> None:
        pass

    async def on_audio_chunk(self, session: Session, chunk: AudioChunk) -> None:
        pass


class MeetingOrchestrator:
    """Lifecycle owner of a single meeting capture session."""

    def __init__(
        self,
        meeting_id: str,
        url: str,
        listener: Optional[OrchestratorListener] = None,
        app_settings: Optional[Settings] = None,
        surface_factory: Optional[SurfaceFactory] = None,
        audio_factory=None,
    ):
        self.settings = app_settings or default_settings
        self.bot_settings = self.settings.bot
        self.listener = listener or OrchestratorListener()
        self.surface_factory = surface_factory or _default_surface_factory
        self.audio_factory = audio_factory

        self.session = Session(meeting_id=meeting_id, url=url)
        self.log = get_meeting_logger("orchestrator", meeting_id)
        self.aggregator = SegmentAggregator(
            clock=self._elapsed,
            prefix_length=self.bot_settings.caption_prefix_length,
            min_unresolved_length=self.bot_settings.min_unresolved_caption_length,
        )

        self.control = ControlChannel()
        self.events = EventChannel()
        self.surface: Optional[MeetingSurface] = None
        self.agent: Optional[AutomationAgent] = None
        self.tap: Optional[DiagnosticTap] = None
        self.audio = None

        self._lines: asyncio.Queue = asyncio.Queue()
        self._event_queue: Optional[asyncio.Queue] = None
        self._agent_task: Optional[asyncio.Task] = None
        self._pumps: List[asyncio.Task] = []
        self._timers: Set[asyncio.Task] = set()
        self._fallback_task: Optional[asyncio.Task] = None

        self._admitted = asyncio.Event()
        self._done = asyncio.Event()
        self._agent_left = asyncio.Event()
        self._started_mono: Optional[float] = None
        self._completing = False
        self._stop_reason: Optional[str] = None

        # Structured events, keyed by event type
        self._event_handlers: Dict[EventType, Callable[[AgentEvent], Awaitable[None]]] = {
            EventType.LOADED: self._on_loaded,
            EventType.STATUS: self._on_status_event,
            EventType.CAPTION: self._on_caption_event,
            EventType.FLUSH: self._on_flush_event,
            EventType.COMPLETED: self._on_completed_event,
        }
        # Status kinds the agent reports
        self._status_handlers: Dict[SessionStatus, Callable[[StatusData], Awaitable[None]]] = {
            SessionStatus.JOINING: self._advance_to(SessionStatus.JOINING),
            SessionStatus.WAITING_ADMISSION: self._advance_to(SessionStatus.WAITING_ADMISSION),
            SessionStatus.IN_MEETING: self._advance_to(SessionStatus.IN_MEETING),
            SessionStatus.RECORDING: self._advance_to(SessionStatus.RECORDING),
            SessionStatus.LEAVING: self._on_agent_leaving,
            SessionStatus.FAILED: self._on_agent_failed,
        }
        # Facts recovered from diagnostic lines
        self._diagnostic_handlers: Dict[DiagnosticKind, Callable[[DiagnosticFact], Awaitable[None]]] = {
            DiagnosticKind.STATUS: self._on_diagnostic_status,
            DiagnosticKind.CAPTIONS_ENABLED: self._on_captions_enabled,
            DiagnosticKind.MEETING_ENDED: self._on_diagnostic_meeting_ended,
            DiagnosticKind.JOIN_FAILED: self._on_diagnostic_join_failed,
            DiagnosticKind.AGENT_STOPPED: self._on_diagnostic_agent_stopped,
            DiagnosticKind.CAPTION: self._on_diagnostic_caption,
        }

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def meeting_id(self) -> str:
        return self.session.meeting_id

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def is_done(self) -> bool:
        return self._done.is_set()

    def get_session(self) -> Session:
        return self.session.snapshot()

    async def wait_done(self) -> Session:
        await self._done.wait()
        return self.get_session()

    async def run(self) -> Session:
        """
        Drive the session until it completes or fails.
        Never raises except for cancellation; failures end up as `failed`.
        """
        self.log.info(f"Starting session {self.session_id} for {self.session.url}")
        try:
            await self._transition(SessionStatus.JOINING)

            self.surface = await self.surface_factory(self.bot_settings, self.session_id)
            self._start_agent()

            await self.surface.open(self.session.url)
            self.control.send(make_command(CommandType.START))

            await self._wait_for_admission()
            if self._done.is_set():
                return self.get_session()

            self._spawn(self._flush_timer())
            self._spawn(self._max_duration_timer())
            await self._start_audio()

            await self._done.wait()

        except AdmissionTimeoutError as e:
            self.log.error(e.message)
            await self._fail(e.message)
        except asyncio.CancelledError:
            await self._fail("Session cancelled")
            raise
        except Exception as e:
            self.log.error(f"Session error: {e}")
            await self._fail(f"Session error: {e}")
        finally:
            await self._teardown()

        return self.get_session()

    async def stop(self, reason: str = "stopped") -> Session:
        """
        Ask the agent to leave; synthesize the completion if it does not
        report back within the grace period.
        """
        try:
            if self._done.is_set() or self._completing:
                return self.get_session()

            self._stop_reason = reason
            self.log.info(f"Stop requested: {reason}")

            if self.session.status.rank < SessionStatus.IN_MEETING.rank:
                # Nothing captured yet, no leave sequence to wait for
                await self._complete(reason, [])
                return self.get_session()

            self.control.send(make_command(CommandType.STOP))
            try:
                await asyncio.wait_for(self._done.wait(), timeout=self.bot_settings.leave_grace_seconds)
            except asyncio.TimeoutError:
                self.log.warning("Agent did not complete in time, synthesizing completion")
                await self._complete(reason, None)
        except Exception as e:
            self.log.error(f"Stop failed: {e}")
            await self._fail(f"Stop failed: {e}")

        return self.get_session()

    async def flush_segments(self) -> bool:
        """Deliver unflushed segments; they are marked only after the listener acknowledges."""
        batch = self.aggregator.snapshot_for_flush()
        if not batch:
            return True
        try:
            acknowledged = await self.listener.on_flush(self.get_session(), batch)
        except Exception as e:
            self.log.warning(f"Flush delivery error: {e}")
            acknowledged = False

        if acknowledged:
            self.aggregator.mark_flushed()
            self.log.debug(f"Flushed {len(batch)} segments")
        else:
            self.log.warning(f"Flush of {len(batch)} segments not acknowledged, will retry")
        return acknowledged

    # =========================================================================
    # State machine
    # =========================================================================

    async def _transition(self, status: SessionStatus) -> bool:
        """Apply a transition if it moves forward; anything else is a no-op."""
        current = self.session.status
        if current.is_terminal:
            return False
        if status != SessionStatus.FAILED and status.rank <= current.rank:
            return False

        self.session.status = status
        if status in (SessionStatus.IN_MEETING, SessionStatus.RECORDING):
            if self.session.started_at is None:
                self.session.started_at = datetime.now()
                self._started_mono = time.monotonic()
            self._admitted.set()
        if status.is_terminal:
            self.session.completed_at = self.session.completed_at or datetime.now()

        self.log.info(f"Status: {current.value} -> {status.value}")
        await self._notify(self.listener.on_status(self.get_session()))
        return True

    async def _fail(self, reason: str) -> None:
        if self.session.status.is_terminal:
            return
        self.session.error = reason
        await self._transition(SessionStatus.FAILED)
        self._done.set()

    async def _complete(self, reason: str, segments: Optional[List[Segment]]) -> bool:
        """
        Single completion path. `segments` is the agent's authoritative list,
        or None to synthesize from what this side has seen.
        """
        if self._completing or self.session.status.is_terminal:
            self.log.debug(f"Completion '{reason}' ignored, already completing")
            return False
        self._completing = True

        await self._cancel_timers()
        self._drain_lines()

        own = self.aggregator.close_all()
        final = segments if segments else own
        final = [s.copy() for s in final]

        await self._transition(SessionStatus.LEAVING)
        self.session.segments = final
        self.session.completed_at = datetime.now()
        await self._transition(SessionStatus.COMPLETED)

        self.log.info(
            f"Session completed ({reason}): "
            f"{len(final)} segments, {format_duration(self.session.duration)}"
        )
        await self._notify(self.listener.on_completed(self.get_session(), reason))
        self._done.set()
        return True

    def _advance_to(self, status: SessionStatus) -> Callable[[StatusData], Awaitable[None]]:
        async def handler(data: StatusData) -> None:
            await self._transition(status)
        return handler

    # =========================================================================
    # Structured events
    # =========================================================================

    async def _pump_events(self) -> None:
        while True:
            raw = await self._event_queue.get()
            try:
                event = parse_event(raw)
            except ProtocolError as e:
                self.log.warning(f"Dropping message: {e.message}")
                continue
            await self._dispatch(self._event_handlers[event.type], event)

    async def _on_loaded(self, event: AgentEvent) -> None:
        data = parse_payload(LoadedData, event)
        self.log.debug(f"Agent loaded on {data.url}")

    async def _on_status_event(self, event: AgentEvent) -> None:
        data = parse_payload(StatusData, event)
        try:
            status = SessionStatus(data.status)
        except ValueError:
            self.log.warning(f"Unknown agent status '{data.status}'")
            return
        handler = self._status_handlers.get(status)
        if handler is None:
            self.log.debug(f"Agent status '{status.value}' has no effect")
            return
        await handler(data)

    async def _on_caption_event(self, event: AgentEvent) -> None:
        data = parse_payload(SegmentData, event)
        await self._observe(data.speaker, data.text)

    async def _on_flush_event(self, event: AgentEvent) -> None:
        data = parse_payload(FlushData, event)
        for segment in data.segments:
            await self._observe(segment.speaker, segment.text)

    async def _on_completed_event(self, event: AgentEvent) -> None:
        data = parse_payload(CompletedData, event)
        self._agent_left.set()
        segments = [s.to_segment() for s in data.segments]
        await self._complete(self._stop_reason or data.reason, segments)

    async def _on_agent_leaving(self, data: StatusData) -> None:
        await self._transition(SessionStatus.LEAVING)
        self._schedule_fallback_completion(data.reason or "meeting_ended")

    async def _on_agent_failed(self, data: StatusData) -> None:
        await self._fail(data.detail or "Agent reported failure")

    # =========================================================================
    # Diagnostic lines
    # =========================================================================

    def _on_diagnostic_line(self, line: str) -> None:
        self._lines.put_nowait(line)

    async def _pump_lines(self) -> None:
        while True:
            line = await self._lines.get()
            await self._apply_line(line)

    async def _apply_line(self, line: str) -> None:
        for fact in parse_diagnostic_line(line):
            await self._dispatch(self._diagnostic_handlers[fact.kind], fact)

    def _drain_lines(self) -> None:
        """Fold captions still queued on the diagnostic channel into the aggregator."""
        while not self._lines.empty():
            line = self._lines.get_nowait()
            for fact in parse_diagnostic_line(line):
                if fact.kind == DiagnosticKind.CAPTION:
                    self.aggregator.observe(fact.speaker, fact.text)

    async def _on_diagnostic_status(self, fact: DiagnosticFact) -> None:
        await self._transition(fact.status)

    async def _on_captions_enabled(self, fact: DiagnosticFact) -> None:
        self.log.info("Captions enabled")

    async def _on_diagnostic_meeting_ended(self, fact: DiagnosticFact) -> None:
        await self._transition(SessionStatus.LEAVING)
        self._schedule_fallback_completion(fact.reason or "meeting_ended")

    async def _on_diagnostic_join_failed(self, fact: DiagnosticFact) -> None:
        if self.session.status.rank < SessionStatus.IN_MEETING.rank:
            await self._fail(fact.reason or "Could not join meeting")

    async def _on_diagnostic_agent_stopped(self, fact: DiagnosticFact) -> None:
        self._agent_left.set()

    async def _on_diagnostic_caption(self, fact: DiagnosticFact) -> None:
        await self._observe(fact.speaker, fact.text)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _observe(self, speaker: str, text: str) -> None:
        if self._completing or self.session.status.is_terminal:
            return
        segment = self.aggregator.observe(speaker, text)
        if segment is None:
            return
        self.session.segments = self.aggregator.all_segments()
        await self._notify(self.listener.on_caption(self.get_session(), segment))

    async def _dispatch(self, handler, payload) -> None:
        try:
            await handler(payload)
        except ProtocolError as e:
            self.log.warning(f"{e.message}")
        except Exception as e:
            self.log.error(f"Handler error: {e}")

    async def _notify(self, callback: Awaitable) -> None:
        try:
            await callback
        except Exception as e:
            self.log.error(f"Listener error: {e}")

    def _start_agent(self) -> None:
        self.agent = AutomationAgent(
            self.surface, self.control, self.events, self.bot_settings, self.session_id
        )
        self.tap = DiagnosticTap(self._on_diagnostic_line)
        self.agent.log.addHandler(self.tap)

        self._event_queue = self.events.subscribe()
        self._pumps = [
            asyncio.create_task(self._pump_events()),
            asyncio.create_task(self._pump_lines()),
        ]
        self._agent_task = asyncio.create_task(self.agent.serve())

    async def _wait_for_admission(self) -> None:
        timeout = self.bot_settings.join_timeout_seconds
        waiters = [
            asyncio.create_task(self._admitted.wait()),
            asyncio.create_task(self._done.wait()),
        ]
        try:
            await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

        if self._admitted.is_set() or self._done.is_set():
            return

        # The line pump may be behind; the tap kept everything
        if self._admitted_per_diagnostics():
            await self._transition(SessionStatus.IN_MEETING)
            return

        raise AdmissionTimeoutError(timeout, self.meeting_id)

    def _admitted_per_diagnostics(self) -> bool:
        if self.tap is None:
            return False
        return any(
            fact.kind == DiagnosticKind.STATUS and fact.status.rank >= SessionStatus.IN_MEETING.rank
            for fact in self.tap.replay()
        )

    def _schedule_fallback_completion(self, reason: str) -> None:
        """If the agent's completion message never arrives, complete from our own segments."""
        if self._fallback_task is not None or self._completing or self.session.status.is_terminal:
            return

        async def fallback() -> None:
            await asyncio.sleep(self.bot_settings.leave_grace_seconds)
            self.log.warning("No completion from agent, synthesizing")
            await self._complete(self._stop_reason or reason, None)

        self._fallback_task = self._spawn(fallback())

    async def _flush_timer(self) -> None:
        while True:
            await asyncio.sleep(self.bot_settings.flush_interval_seconds)
            await self.flush_segments()

    async def _max_duration_timer(self) -> None:
        await asyncio.sleep(self.bot_settings.max_duration_seconds)
        self.log.info("Max duration reached")
        await self.stop("max_duration_reached")

    async def _start_audio(self) -> None:
        if self.audio_factory is None and not self.settings.audio.enabled:
            return
        if self.audio_factory is None:
            from meet_capture.recording import AudioChunkCapture
            self.audio_factory = AudioChunkCapture

        async def on_chunk(chunk: AudioChunk) -> None:
            await self._notify(self.listener.on_audio_chunk(self.get_session(), chunk))

        self.audio = self.audio_factory(self.settings.audio, self.meeting_id, on_chunk)
        if not await self.audio.start():
            self.log.warning("Audio capture unavailable, continuing with captions only")
            self.audio = None

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)
        return task

    async def _cancel_timers(self) -> None:
        current = asyncio.current_task()
        tasks = [t for t in self._timers if t is not current]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                self.log.debug(f"Timer ended with error: {e}")

    async def _teardown(self) -> None:
        await self._cancel_timers()

        if self._agent_task is not None and not self._agent_task.done():
            if not self._agent_left.is_set():
                self.control.send(make_command(CommandType.STOP))
                try:
                    await asyncio.wait_for(
                        self._agent_left.wait(), timeout=self.bot_settings.leave_grace_seconds
                    )
                except asyncio.TimeoutError:
                    self.log.warning("Agent leave sequence timed out")
            self.control.close()
            try:
                await asyncio.wait_for(self._agent_task, timeout=self.bot_settings.leave_grace_seconds)
            except asyncio.TimeoutError:
                self.log.warning("Agent did not shut down, cancelling")
            except Exception as e:
                self.log.error(f"Agent error: {e}")
        else:
            self.control.close()

        if self.audio is not None:
            try:
                await self.audio.stop()
            except Exception as e:
                self.log.warning(f"Error stopping audio capture: {e}")

        if self.surface is not None:
            try:
                await self.surface.close()
            except Exception as e:
                self.log.warning(f"Error closing browser: {e}")

        for pump in self._pumps:
            pump.cancel()
        for pump in self._pumps:
            try:
                await pump
            except asyncio.CancelledError:
                pass

        if self.agent is not None and self.tap is not None:
            self.agent.log.removeHandler(self.tap)
        if self._event_queue is not None:
            self.events.unsubscribe(self._event_queue)

        self._done.set()
        self.log.info(f"Session {self.session_id} torn down ({self.session.status.value})")

    def _elapsed(self) -> float:
        if self._started_mono is None:
            return 0.0
        return time.monotonic() - self._started_mono
