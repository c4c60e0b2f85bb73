"""
Tests for environment-driven configuration.
"""

import pytest
from pydantic import ValidationError

from meet_capture.config import BackendSettings, BotSettings, Settings


def test_bot_defaults():
    bot = BotSettings()

    assert bot.join_timeout_seconds == 120
    assert bot.flush_interval_seconds == 30
    assert bot.max_duration_seconds == 120 * 60
    assert "bot, please leave" in bot.exit_phrases


def test_bot_settings_from_environment(monkeypatch):
    monkeypatch.setenv("BOT_JOIN_TIMEOUT_SECONDS", "45")
    monkeypatch.setenv("BOT_NAME", "Scribe")

    bot = BotSettings()

    assert bot.join_timeout_seconds == 45
    assert bot.name == "Scribe"


def test_backend_settings_from_environment(monkeypatch):
    monkeypatch.setenv("BACKEND_URL", "http://backend:4000")
    monkeypatch.setenv("BACKEND_API_KEY", "secret")

    backend = BackendSettings()

    assert backend.url == "http://backend:4000"
    assert backend.api_key == "secret"


def test_log_level_is_normalized():
    assert Settings(log_level="debug").log_level == "DEBUG"


def test_invalid_log_level_is_rejected():
    with pytest.raises(ValidationError):
        Settings(log_level="verbose")


@pytest.mark.parametrize("url,supported", [
    ("https://meet.google.com/abc-defg-hij", True),
    ("https://MEET.GOOGLE.COM/abc-defg-hij", True),
    ("https://zoom.us/j/123456", False),
    ("", False),
])
def test_supported_meeting_urls(url, supported):
    assert Settings().is_supported_url(url) is supported
