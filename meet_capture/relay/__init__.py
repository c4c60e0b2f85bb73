"""
Backend delivery: Socket.IO push notifications and HTTP transcript delivery.
"""

from .backend_relay import BackendRelay

__all__ = ["BackendRelay"]
