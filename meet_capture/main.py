"""
FastAPI application initialization for the Meeting Capture Bot.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meet_capture.config import settings
from meet_capture.core.logging import setup_logging, get_logger
from meet_capture.api.v1.router import api_router


# Setup logging
setup_logging()

# Create FastAPI application
app = FastAPI(
    title=settings.project_name,
    version=settings.version,
    description="Joins Google Meet sessions, captures captions and delivers transcripts to the backend",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    """
    Application startup event.
    Open the backend relay and create the session registry.
    """
    from meet_capture.core.dependencies import set_session_registry
    from meet_capture.relay import BackendRelay
    from meet_capture.sessions import SessionRegistry

    logger = get_logger("startup")
    logger.info("Starting Meeting Capture Bot API...")

    relay = BackendRelay(settings.backend)
    await relay.connect()

    set_session_registry(SessionRegistry(relay, settings))
    logger.info(f"Meeting Capture Bot API started on port {settings.server.port}")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Application shutdown event.
    Stop every session, then close the backend relay.
    """
    from meet_capture.core.dependencies import get_session_registry, set_session_registry
    from meet_capture.core.exceptions import HTTPInternalServerError

    logger = get_logger("shutdown")
    logger.info("Shutting down Meeting Capture Bot API...")

    try:
        registry = await get_session_registry()
    except HTTPInternalServerError:
        logger.warning("Session registry was never initialized")
        return

    try:
        await registry.shutdown()
    finally:
        await registry.relay.close()
        set_session_registry(None)

    logger.info("Meeting Capture Bot API shutdown complete")
