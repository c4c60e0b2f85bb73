"""
Meeting page surface.

Everything the agent needs from the meeting UI, behind one interface, so the
agent's lifecycle logic never touches selectors directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from meet_capture.agent.page_state import PageIndicators


# (speaker_hint, raw_text)
CaptionCallback = Callable[[Optional[str], str], Awaitable[None]]


class MeetingSurface(ABC):
    """UI adapter for one meeting page. Action methods return False when the control was not found."""

    @abstractmethod
    async def open(self, url: str) -> None:
        """Navigate to the meeting URL."""

    @abstractmethod
    async def read_indicators(self) -> PageIndicators:
        """Snapshot of what is currently visible."""

    @abstractmethod
    async def mute_media(self) -> bool:
        ...

    @abstractmethod
    async def dismiss_overlays(self) -> bool:
        ...

    @abstractmethod
    async def click_join(self) -> bool:
        ...

    @abstractmethod
    async def enable_captions(self) -> bool:
        ...

    @abstractmethod
    async def send_chat_message(self, message: str) -> bool:
        ...

    @abstractmethod
    async def click_leave(self) -> bool:
        ...

    @abstractmethod
    async def start_caption_observer(self, callback: CaptionCallback) -> None:
        """Start delivering caption mutations to callback."""

    @abstractmethod
    async def stop_caption_observer(self) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the page and its browser."""

    @property
    def url(self) -> str:
        return ""
