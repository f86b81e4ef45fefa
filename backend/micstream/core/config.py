"""Configuration settings for the microphone streaming backend."""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 3030

    # Capture settings
    input_device: Optional[str] = None  # None = system default input device

    # Streaming settings
    poll_interval_ms: int = 10  # How often the publisher drains the sink
    keepalive_seconds: float = 15.0  # Idle time before a keep-alive comment is sent
    max_buffer_seconds: float = 5.0  # Sink cap in seconds of audio, 0 disables the cap

    # Supervision
    error_poll_interval_ms: int = 200  # How often the capture error channel is checked
    graceful_shutdown_seconds: int = 5  # Upper bound on waiting for open connections at exit

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
