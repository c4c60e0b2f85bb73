"""
Meeting session orchestration.
"""

from .orchestrator import MeetingOrchestrator, OrchestratorListener, SurfaceFactory

__all__ = ["MeetingOrchestrator", "OrchestratorListener", "SurfaceFactory"]
