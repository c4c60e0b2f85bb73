"""
Meeting Capture Bot.

Joins Google Meet sessions with an automated browser, rebuilds a
speaker-attributed transcript from live captions and delivers it to the
backend exactly once.
"""

__version__ = "1.0.0"
