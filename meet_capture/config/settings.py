"""
Configuration settings for the Meeting Capture Bot.
Uses Pydantic Settings for type-safe configuration with environment variable support.
"""

from typing import List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_EXIT_PHRASES = [
    "notetaker, please leave",
    "note taker, please leave",
    "bot, please leave",
    "bot leave the meeting",
    "meeting bot, please leave",
]


class BotSettings(BaseSettings):
    """Bot behavior configuration (shared by the orchestrator and the in-page agent)."""
    model_config = SettingsConfigDict(env_prefix="BOT_")

    name: str = Field(default="Meeting Transcriber", description="Bot display name")
    headless: bool = Field(default=False, description="Run the browser headless")
    user_data_dir: str = Field(default=".chrome-profile", description="Browser profile root")

    # Lifecycle timing
    join_timeout_seconds: float = Field(default=120.0, description="Max wait for admission (seconds)")
    max_duration_minutes: float = Field(default=120.0, description="Hard ceiling on session length")
    flush_interval_seconds: float = Field(default=30.0, description="Periodic segment flush interval")
    leave_grace_seconds: float = Field(default=15.0, description="Wait for the agent's leave sequence")
    page_settle_seconds: float = Field(default=3.0, description="Pause after navigation")
    join_poll_interval_seconds: float = Field(default=1.0, description="Admission polling cadence")
    end_check_interval_seconds: float = Field(default=2.0, description="Meeting-end polling cadence")

    # Human-like pacing of UI actions
    human_delay_min_ms: int = Field(default=300, description="Min delay between UI actions")
    human_delay_max_ms: int = Field(default=800, description="Max delay between UI actions")
    ui_action_attempts: int = Field(default=3, description="Attempts per UI action before degrading")

    # Capture behavior
    announcement: str = Field(
        default="This meeting is being transcribed by the Meeting Transcriber bot.",
        description="Chat message sent after joining (empty to disable)",
    )
    exit_phrases: List[str] = Field(
        default_factory=lambda: list(DEFAULT_EXIT_PHRASES),
        description="Spoken phrases that make the bot leave",
    )
    caption_prefix_length: int = Field(default=20, description="Prefix length for continuation matching")
    min_unresolved_caption_length: int = Field(
        default=10, description="Minimum caption length when the speaker is unknown"
    )

    @property
    def max_duration_seconds(self) -> float:
        return self.max_duration_minutes * 60


class BackendSettings(BaseSettings):
    """Backend API configuration."""
    model_config = SettingsConfigDict(env_prefix="BACKEND_")

    url: str = Field(default="http://localhost:4000", description="Backend API base URL")
    ws_url: str = Field(default="ws://localhost:4000", description="Backend Socket.IO URL")
    api_key: str = Field(default="", description="Backend API key for authentication")

    # Push channel
    push_enabled: bool = Field(default=True, description="Open the real-time push connection")
    reconnection_attempts: int = Field(default=10, description="Push reconnection attempts")
    reconnection_delay: float = Field(default=1.0, description="Fixed delay between reconnections")

    # Batched delivery
    request_timeout: float = Field(default=30.0, description="HTTP timeout (seconds)")
    delivery_retries: int = Field(default=3, description="Retries for segment/finalize calls")
    delivery_retry_delay: float = Field(default=1.0, description="Initial retry delay (seconds)")


class ServerSettings(BaseSettings):
    """Operator API server configuration."""
    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3001, description="Bind port")


class AudioSettings(BaseSettings):
    """Audio side-channel configuration."""
    model_config = SettingsConfigDict(env_prefix="AUDIO_")

    enabled: bool = Field(default=False, description="Capture and relay audio chunks")
    chunk_seconds: int = Field(default=10, description="Length of each encoded chunk")
    pulse_source: str = Field(default="default.monitor", description="PulseAudio source")
    sample_rate: int = Field(default=16000, description="Sample rate in Hz")
    output_dir: str = Field(default="recordings/chunks", description="Scratch directory for chunks")


class Settings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore"
    )

    # Nested settings
    bot: BotSettings = Field(default_factory=BotSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    audio: AudioSettings = Field(default_factory=AudioSettings)

    # Application settings
    project_name: str = Field(default="Meeting Capture Bot", description="Service name")
    version: str = Field(default="1.0.0", description="Service version")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    log_to_file: bool = Field(default=True, description="Write rotating log files under logs/")
    supported_host: str = Field(default="meet.google.com", description="Only meeting host accepted")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    def is_supported_url(self, url: str) -> bool:
        """Check the meeting URL belongs to the supported provider."""
        return self.supported_host in (url or "").lower()


# Global settings instance
settings = Settings()
