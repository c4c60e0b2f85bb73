"""
Audio side channel: fixed-length chunks captured from PulseAudio.
"""

from .audio_chunks import AudioChunkCapture

__all__ = ["AudioChunkCapture"]
