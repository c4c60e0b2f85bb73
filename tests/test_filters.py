"""
Tests for caption noise filtering and exit-phrase detection.
"""

import pytest

from meet_capture.capture.filters import ExitPhraseDetector, is_ui_noise


@pytest.mark.parametrize("text", [
    "You left the meeting",
    "Return to home screen",
    "Meeting details",
    "closed_caption",
    "arrow_drop_down",
    "People3",
    "English (United States)",
    "ok",
    "",
    "   ",
])
def test_ui_chrome_is_noise(text):
    assert is_ui_noise(text)


@pytest.mark.parametrize("text", [
    "Let's start with the quarterly numbers",
    "Hi there, everyone",
    "Can you share your screen please?",
])
def test_speech_is_not_noise(text):
    assert not is_ui_noise(text)


def test_bot_name_is_noise():
    assert is_ui_noise("Meeting Bot", bot_name="Meeting Bot")
    assert is_ui_noise("meeting bot ", bot_name="Meeting Bot")
    assert not is_ui_noise("Meeting Bot joined late", bot_name="Meeting Bot")


def test_exit_phrase_matches_case_insensitive_substring():
    detector = ExitPhraseDetector(["bot, please leave", "stop recording"])

    assert detector.match("OK Bot, please leave now") == "bot, please leave"
    assert "Could you STOP RECORDING?" in detector
    assert detector.match("The bot can stay") is None


def test_exit_phrase_ignores_blank_phrases():
    detector = ExitPhraseDetector(["", "   ", "goodbye bot"])

    assert detector.phrases == ["goodbye bot"]
    assert detector.match("") is None
