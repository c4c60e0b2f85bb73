"""
Configuration module for the Meeting Capture Bot.
"""

from .settings import (
    Settings,
    settings,
    BotSettings,
    BackendSettings,
    ServerSettings,
    AudioSettings,
    DEFAULT_EXIT_PHRASES,
)

__all__ = [
    "Settings",
    "settings",
    "BotSettings",
    "BackendSettings",
    "ServerSettings",
    "AudioSettings",
    "DEFAULT_EXIT_PHRASES",
]
