"""Server settings.

All settings can be configured via environment variables with the prefix
MCP_ENGINE_. For example, MCP_ENGINE_DEBUG=true will set debug=True.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings shared by the runner, the transports and the HTTP app."""

    model_config = SettingsConfigDict(
        env_prefix="MCP_ENGINE_",
        env_file=".env",
        extra="ignore",
    )

    # Server settings
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # HTTP settings
    host: str = "127.0.0.1"
    port: int = 8000
    sse_path: str = "/sse"
    message_path: str = "/messages"

    # Runner settings
    poll_interval: float = Field(default=0.1, gt=0, le=0.8)
    """Seconds an idle read/write loop sleeps before polling again."""
    queue_size: int = Field(default=100, ge=1)
    shutdown_timeout: float = Field(default=5.0, ge=0)
    """Upper bound on draining queues and joining loops during shutdown."""

    # SSE session settings
    session_max_age: float = Field(default=3600.0, gt=0)
    cleanup_interval: float = Field(default=60.0, gt=0)

    # Dispatch settings
    ignore_unknown_methods: bool = False
    """Silently drop requests for unregistered methods instead of answering METHOD_NOT_FOUND."""
