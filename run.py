"""
Start the Meeting Capture Bot API under uvicorn.
"""

import sys
import uvicorn

from meet_capture.config import settings


def banner() -> str:
    server = settings.server
    bot = settings.bot
    lines = [
        "=" * 60,
        "MEETING CAPTURE BOT",
        "=" * 60,
        f"📍 API:        http://{server.host}:{server.port}/api/v1",
        f"📚 Docs:       http://{server.host}:{server.port}/api/docs",
        f"🔌 Backend:    {settings.backend.url} (push {'on' if settings.backend.push_enabled else 'off'})",
        f"🤖 Bot name:   {bot.name} ({'headless' if bot.headless else 'headed'} browser)",
        f"⏱️  Limits:     join {bot.join_timeout_seconds:.0f}s, session {bot.max_duration_minutes:.0f}min",
        f"🎵 Audio:      {'enabled' if settings.audio.enabled else 'disabled'}",
        "=" * 60,
    ]
    return "\n".join(lines)


def run():
    """Run the API server with the configured host and port."""
    print("\n" + banner() + "\n")
    uvicorn.run(
        "meet_capture.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    try:
        run()
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        sys.exit(1)
