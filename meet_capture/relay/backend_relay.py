"""
Backend Relay

Two paths to the backend:
- a Socket.IO push connection for real-time notifications (best effort)
- HTTP calls for segment batches and the final transcript (retried, durable)

Every segment reaches the backend through a flush or through finalize, so a
lost push notification never loses data.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import socketio
from socketio.exceptions import ConnectionError as PushConnectionError

from meet_capture.config import BackendSettings
from meet_capture.core.exceptions import BackendDeliveryError, ConfigurationError
from meet_capture.core.logging import get_logger
from meet_capture.models import AudioChunk, Segment, Session
from meet_capture.protocol.messages import now_ms
from meet_capture.utils import retry_async


logger = get_logger("backend_relay")


class BackendRelay:
    """Push notifications and durable delivery to the backend."""

    def __init__(
        self,
        backend_settings: BackendSettings,
        http_client: Optional[httpx.AsyncClient] = None,
        sio: Optional[socketio.AsyncClient] = None,
    ):
        if not backend_settings.url:
            raise ConfigurationError("Backend URL is not configured", {"setting": "BACKEND_URL"})

        self.settings = backend_settings
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            base_url=backend_settings.url,
            headers=self._headers(),
            timeout=backend_settings.request_timeout,
        )
        self.sio = sio

        self._post = retry_async(
            max_retries=backend_settings.delivery_retries,
            delay=backend_settings.delivery_retry_delay,
            exceptions=(httpx.TransportError, _RetryableStatus),
            logger=logger,
        )(self._post_once)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["X-API-Key"] = self.settings.api_key
        return headers

    # =========================================================================
    # Push channel
    # =========================================================================

    async def connect(self) -> None:
        """Open the push connection. Failure is logged; delivery still works over HTTP."""
        if not self.settings.push_enabled:
            logger.info("Push channel disabled")
            return

        if self.sio is None:
            self.sio = socketio.AsyncClient(
                reconnection=True,
                reconnection_attempts=self.settings.reconnection_attempts,
                reconnection_delay=self.settings.reconnection_delay,
                reconnection_delay_max=self.settings.reconnection_delay,
                randomization_factor=0,
            )
        self._register_handlers()

        logger.info(f"Connecting to backend push channel at {self.settings.ws_url}...")
        try:
            await self.sio.connect(
                self.settings.ws_url,
                headers={"X-API-Key": self.settings.api_key} if self.settings.api_key else {},
                transports=["websocket", "polling"],
            )
        except PushConnectionError as e:
            logger.warning(f"Push channel unavailable: {e}")

    def _register_handlers(self) -> None:
        @self.sio.event
        async def connect():
            logger.info("✅ Connected to backend push channel")
            await self.emit("bot_service_connected", {"service": "meet-capture-bot", "timestamp": now_ms()})

        @self.sio.event
        async def disconnect(*args):
            logger.warning("Disconnected from backend push channel")

        @self.sio.event
        async def connect_error(data):
            logger.error(f"Push channel connection error: {data}")

    @property
    def push_connected(self) -> bool:
        return bool(self.sio is not None and self.sio.connected)

    async def emit(self, event: str, data: Dict[str, Any]) -> bool:
        """Best-effort notification; dropped when the push channel is down."""
        if not self.push_connected:
            logger.debug(f"Push channel not connected, dropping {event}")
            return False
        try:
            await self.sio.emit(event, data)
            return True
        except Exception as e:
            logger.warning(f"Failed to emit {event}: {e}")
            return False

    async def emit_status(self, session: Session, message: Optional[str] = None) -> bool:
        return await self.emit("bot_status_change", {
            "meetingId": session.meeting_id,
            "status": session.status.value,
            "message": message or session.error or f"Bot status: {session.status.value}",
        })

    async def emit_caption(self, meeting_id: str, segment: Segment) -> bool:
        return await self.emit("caption_added", {"meetingId": meeting_id, "segment": segment.to_dict()})

    async def emit_meeting_ended(self, session: Session, reason: str) -> bool:
        return await self.emit("bot_meeting_ended", {
            "meetingId": session.meeting_id,
            "session": session.to_dict(),
            "reason": reason,
        })

    async def emit_audio_chunk(self, chunk: AudioChunk) -> bool:
        return await self.emit("audio_chunk", chunk.to_dict())

    # =========================================================================
    # Durable delivery
    # =========================================================================

    async def send_segments(self, meeting_id: str, segments: List[Segment]) -> bool:
        """Append a batch of segments. Returns True once the backend accepted it."""
        if not segments:
            return True
        try:
            await self._deliver(f"/api/bot/{meeting_id}/segments", {
                "segments": [s.to_dict() for s in segments],
            })
            logger.debug(f"Sent {len(segments)} segments for {meeting_id}")
            return True
        except BackendDeliveryError as e:
            logger.error(f"Failed to send segments for {meeting_id}: {e.message}")
            return False

    async def finalize_meeting(self, session: Session) -> Dict[str, Any]:
        """
        Deliver the full transcript for a completed session.

        Raises:
            BackendDeliveryError: when the backend rejects or cannot be reached
        """
        result = await self._deliver(f"/api/bot/{session.meeting_id}/finalize", {
            "sessionId": session.session_id,
            "segments": [s.to_dict() for s in session.segments],
            "duration": round(session.duration, 2),
        })
        logger.info(f"Finalized meeting {session.meeting_id} ({session.segment_count} segments)")
        return result

    async def _deliver(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await self._post(path, payload)
        except (httpx.HTTPError, _RetryableStatus) as e:
            raise BackendDeliveryError(f"Delivery to {path} failed: {e}", path=path) from e

    async def _post_once(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.http_client.post(path, json=payload)
        if response.status_code >= 500:
            raise _RetryableStatus(f"{response.status_code} from backend")
        if response.status_code >= 400:
            raise BackendDeliveryError(
                f"Backend rejected {path}: {response.status_code}",
                path=path,
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    async def close(self) -> None:
        if self.push_connected:
            try:
                await self.sio.disconnect()
            except Exception as e:
                logger.warning(f"Error disconnecting push channel: {e}")
        if self._owns_http_client:
            await self.http_client.aclose()


class _RetryableStatus(Exception):
    """Server-side error worth retrying."""
