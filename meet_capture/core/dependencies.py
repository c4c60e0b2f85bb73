"""
Dependency injection for the Meeting Capture API.
Provides the session registry to API endpoints.
"""

from typing import Optional, TYPE_CHECKING
from fastapi import Depends

if TYPE_CHECKING:
    from meet_capture.sessions import SessionRegistry

_session_registry: Optional["SessionRegistry"] = None


def set_session_registry(registry: Optional["SessionRegistry"]) -> None:
    """Set the process-wide session registry (None on shutdown)."""
    global _session_registry
    _session_registry = registry


async def get_session_registry() -> "SessionRegistry":
    """
    Dependency injection for the SessionRegistry.

    Raises:
        HTTPException: If the registry is not initialized
    """
    from meet_capture.core.exceptions import HTTPInternalServerError

    if _session_registry is None:
        raise HTTPInternalServerError("Session registry not initialized")

    return _session_registry


SessionRegistryDep = Depends(get_session_registry)
