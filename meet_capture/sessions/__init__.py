"""
Session registry: one orchestrator per meeting, exactly-once finalization.
"""

from .registry import SessionRegistry

__all__ = ["SessionRegistry"]
