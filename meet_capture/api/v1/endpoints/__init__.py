"""
API v1 endpoints.
"""

from . import bot, health

__all__ = ["bot", "health"]
