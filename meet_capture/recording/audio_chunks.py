"""
PulseAudio chunked audio capture.

Records what the browser plays through FFmpeg + PulseAudio and cuts it into
fixed-length encoded chunks with the segment muxer. Each finished chunk is
read, base64-encoded and handed to a callback, then removed from disk.
"""

from __future__ import annotations

import asyncio
import base64
import shutil
import time
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from meet_capture.config import AudioSettings
from meet_capture.core.logging import get_logger
from meet_capture.models import AudioChunk


logger = get_logger("audio_chunks")


ChunkCallback = Callable[[AudioChunk], Awaitable[None]]

CHUNK_PATTERN = "chunk_%05d.ogg"


class AudioChunkCapture:
    """Capture system audio in fixed-length chunks for one meeting."""

    def __init__(self, audio_settings: AudioSettings, meeting_id: str, on_chunk: ChunkCallback):
        self.settings = audio_settings
        self.meeting_id = meeting_id
        self.on_chunk = on_chunk
        self.output_dir = Path(audio_settings.output_dir) / meeting_id

        self.ffmpeg_process: Optional[asyncio.subprocess.Process] = None
        self.state = "idle"  # idle, recording, stopped, error
        self._sequence = 0
        self._watch_task: Optional[asyncio.Task] = None

    @staticmethod
    async def is_available() -> bool:
        """Check that PulseAudio answers."""
        try:
            proc = await asyncio.create_subprocess_exec(
                "pactl", "info",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=5.0)
        except FileNotFoundError:
            logger.warning("pactl command not found - PulseAudio not installed")
            return False
        except asyncio.TimeoutError:
            logger.warning("PulseAudio check timed out")
            return False
        return proc.returncode == 0 and b"Server Name:" in stdout

    async def start(self) -> bool:
        if self.state != "idle":
            logger.warning(f"Cannot start: current state is '{self.state}'")
            return False

        if not await self.is_available():
            self.state = "error"
            return False

        self.output_dir.mkdir(parents=True, exist_ok=True)
        args = self._build_ffmpeg_args()
        logger.info(f"FFmpeg command: ffmpeg {' '.join(args)}")

        try:
            self.ffmpeg_process = await asyncio.create_subprocess_exec(
                "ffmpeg", *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError:
            logger.error("ffmpeg command not found")
            self.state = "error"
            return False

        await asyncio.sleep(1.0)
        if self.ffmpeg_process.returncode is not None:
            stderr = await self.ffmpeg_process.stderr.read()
            logger.error(f"FFmpeg exited immediately: {stderr.decode(errors='replace')}")
            self.state = "error"
            return False

        self.state = "recording"
        self._watch_task = asyncio.create_task(self._watch_chunks())
        logger.info(f"🎵 Audio capture started for {self.meeting_id} ({self.settings.chunk_seconds}s chunks)")
        return True

    async def stop(self) -> None:
        if self.state != "recording":
            return
        self.state = "stopped"

        if self._watch_task:
            self._watch_task.cancel()
            try:
                await self._watch_task
            except asyncio.CancelledError:
                pass

        if self.ffmpeg_process and self.ffmpeg_process.returncode is None:
            try:
                if self.ffmpeg_process.stdin:
                    self.ffmpeg_process.stdin.write(b"q")
                    await self.ffmpeg_process.stdin.drain()
                await asyncio.wait_for(self.ffmpeg_process.wait(), timeout=5.0)
            except (asyncio.TimeoutError, BrokenPipeError, ConnectionResetError):
                logger.warning("FFmpeg didn't exit gracefully, killing...")
                self.ffmpeg_process.kill()
                await self.ffmpeg_process.wait()

        # The last chunk is complete once ffmpeg has exited
        await self._emit_ready(include_last=True)
        shutil.rmtree(self.output_dir, ignore_errors=True)
        logger.info(f"Audio capture stopped for {self.meeting_id}, {self._sequence} chunks sent")

    async def _watch_chunks(self) -> None:
        while True:
            await asyncio.sleep(1.0)
            await self._emit_ready(include_last=False)

    async def _emit_ready(self, include_last: bool) -> None:
        files = self._chunk_files()
        ready = files if include_last else files[:-1]
        for path in ready:
            data = path.read_bytes()
            path.unlink()
            if not data:
                continue
            self._sequence += 1
            chunk = AudioChunk(
                meeting_id=self.meeting_id,
                sequence=self._sequence,
                data=base64.b64encode(data).decode("ascii"),
                size=len(data),
                duration=float(self.settings.chunk_seconds),
                timestamp=int(time.time() * 1000),
            )
            try:
                await self.on_chunk(chunk)
            except Exception as e:
                logger.warning(f"Audio chunk {chunk.sequence} not delivered: {e}")

    def _chunk_files(self) -> List[Path]:
        if not self.output_dir.exists():
            return []
        return sorted(self.output_dir.glob("chunk_*.ogg"))

    def _build_ffmpeg_args(self) -> list:
        return [
            "-y",
            "-f", "pulse",
            "-i", self.settings.pulse_source,
            "-ac", "1",
            "-ar", str(self.settings.sample_rate),
            "-c:a", "libopus",
            "-application", "voip",
            "-b:a", "32k",
            "-f", "segment",
            "-segment_time", str(self.settings.chunk_seconds),
            "-reset_timestamps", "1",
            str(self.output_dir / CHUNK_PATTERN),
        ]
