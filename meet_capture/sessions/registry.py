"""
Session Registry

One orchestrator per meeting id. Routes orchestrator notifications to the
backend relay and makes sure each meeting is finalized at most once, even
when completion is reported more than once.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Set

from meet_capture.config import Settings, settings as default_settings
from meet_capture.core.exceptions import BackendDeliveryError
from meet_capture.core.logging import get_logger
from meet_capture.meeting_handler import MeetingOrchestrator, OrchestratorListener
from meet_capture.models import AudioChunk, Segment, Session, SessionStatus
from meet_capture.relay import BackendRelay


logger = get_logger("session_registry")


OrchestratorFactory = Callable[[str, str, OrchestratorListener, Settings], MeetingOrchestrator]


class SessionRegistry(OrchestratorListener):
    """Tracks active sessions and owns finalization."""

    def __init__(
        self,
        relay: BackendRelay,
        app_settings: Optional[Settings] = None,
        orchestrator_factory: Optional[OrchestratorFactory] = None,
    ):
        self.relay = relay
        self.settings = app_settings or default_settings
        self.orchestrator_factory = orchestrator_factory or self._default_factory

        self._orchestrators: Dict[str, MeetingOrchestrator] = {}
        self._running: Set[asyncio.Task] = set()
        # Meetings whose finalize call is in flight or done
        self._finalized: Set[str] = set()
        # Completed sessions still waiting for a successful finalize
        self._unfinalized: Dict[str, Session] = {}

    @staticmethod
    def _default_factory(
        meeting_id: str, url: str, listener: OrchestratorListener, session_settings: Settings
    ) -> MeetingOrchestrator:
        return MeetingOrchestrator(meeting_id, url, listener=listener, app_settings=session_settings)

    def _session_settings(
        self, bot_name: Optional[str], duration_minutes: Optional[float]
    ) -> Settings:
        overrides = {}
        if bot_name:
            overrides["name"] = bot_name
        if duration_minutes:
            overrides["max_duration_minutes"] = duration_minutes
        if not overrides:
            return self.settings
        return self.settings.model_copy(update={"bot": self.settings.bot.model_copy(update=overrides)})

    # =========================================================================
    # Session operations
    # =========================================================================

    async def start_session(
        self,
        meeting_id: str,
        url: str,
        bot_name: Optional[str] = None,
        duration_minutes: Optional[float] = None,
    ) -> Session:
        """Start capturing a meeting, or return the session already tracking it."""
        existing = self._orchestrators.get(meeting_id)
        if existing is not None:
            session = existing.get_session()
            if session.status.is_terminal:
                # Held until its finalize succeeds; stop_session retries it
                logger.warning(
                    f"Meeting {meeting_id} completed but is not finalized yet ({existing.session_id}); "
                    f"stop the session to retry finalization before joining again"
                )
            else:
                logger.info(f"Session for {meeting_id} already active ({existing.session_id})")
            return session

        session_settings = self._session_settings(bot_name, duration_minutes)
        orchestrator = self.orchestrator_factory(meeting_id, url, self, session_settings)
        self._orchestrators[meeting_id] = orchestrator
        self._finalized.discard(meeting_id)

        task = asyncio.create_task(self._run(orchestrator))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

        logger.info(f"Started session {orchestrator.session_id} for meeting {meeting_id}")
        return orchestrator.get_session()

    async def stop_session(self, meeting_id: str, reason: str = "user_requested") -> Optional[Session]:
        """Stop a session; for an already-completed one, retry its finalization."""
        orchestrator = self._orchestrators.get(meeting_id)
        if orchestrator is None:
            logger.info(f"No session found for meeting {meeting_id}")
            return None

        if orchestrator.is_done:
            pending = self._unfinalized.get(meeting_id)
            if pending is not None:
                logger.info(f"Retrying finalization for {meeting_id}")
                await self.finalize(pending)
            return orchestrator.get_session()

        return await orchestrator.stop(reason)

    def get_session(self, meeting_id: str) -> Optional[Session]:
        orchestrator = self._orchestrators.get(meeting_id)
        return orchestrator.get_session() if orchestrator else None

    def list_sessions(self) -> List[Session]:
        return [o.get_session() for o in self._orchestrators.values()]

    @property
    def active_count(self) -> int:
        return sum(1 for o in self._orchestrators.values() if not o.is_done)

    async def shutdown(self) -> None:
        """Stop every session concurrently and wait for all of them to wind down."""
        orchestrators = [o for o in self._orchestrators.values() if not o.is_done]
        logger.info(f"Shutting down {len(orchestrators)} active session(s)...")

        results = await asyncio.gather(
            *(o.stop("shutdown") for o in orchestrators), return_exceptions=True
        )
        for orchestrator, result in zip(orchestrators, results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping {orchestrator.meeting_id}: {result}")

        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

        for meeting_id in list(self._unfinalized):
            logger.warning(f"Abandoning unfinalized meeting {meeting_id}")
        self._unfinalized.clear()
        self._orchestrators.clear()
        logger.info("Session registry shut down")

    # =========================================================================
    # Finalization
    # =========================================================================

    async def finalize(self, session: Session) -> bool:
        """
        Deliver a completed session's transcript once.
        A failed delivery unmarks the meeting so a later attempt can succeed.
        """
        meeting_id = session.meeting_id
        if meeting_id in self._finalized:
            logger.debug(f"Meeting {meeting_id} already finalized, skipping")
            return True

        self._finalized.add(meeting_id)
        self._unfinalized[meeting_id] = session
        try:
            await self.relay.finalize_meeting(session)
        except BackendDeliveryError as e:
            self._finalized.discard(meeting_id)
            logger.error(f"Failed to finalize meeting {meeting_id}: {e.message}")
            return False

        self._unfinalized.pop(meeting_id, None)
        self._release(meeting_id, session.session_id)
        await self.relay.emit_status(session, "Meeting completed successfully")
        return True

    def _release(self, meeting_id: str, session_id: str) -> None:
        orchestrator = self._orchestrators.get(meeting_id)
        if orchestrator is not None and orchestrator.session_id == session_id:
            del self._orchestrators[meeting_id]
            logger.info(f"Session {session_id} for {meeting_id} cleaned up")

    async def _run(self, orchestrator: MeetingOrchestrator) -> None:
        session = await orchestrator.run()
        if session.status == SessionStatus.FAILED:
            # Nothing to finalize after a failure
            logger.warning(f"Session for {session.meeting_id} failed: {session.error}")
            self._release(session.meeting_id, session.session_id)

    # =========================================================================
    # Orchestrator notifications
    # =========================================================================

    async def on_status(self, session: Session) -> None:
        await self.relay.emit_status(session)

    async def on_caption(self, session: Session, segment: Segment) -> None:
        await self.relay.emit_caption(session.meeting_id, segment)

    async def on_flush(self, session: Session, segments: List[Segment]) -> bool:
        return await self.relay.send_segments(session.meeting_id, segments)

    async def on_completed(self, session: Session, reason: str) -> None:
        await self.relay.emit_meeting_ended(session, reason)
        await self.finalize(session)

    async def on_audio_chunk(self, session: Session, chunk: AudioChunk) -> None:
        await self.relay.emit_audio_chunk(chunk)
