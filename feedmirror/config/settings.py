"""
FeedMirror Configuration System
==============================

Configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.
"""

import os
from pathlib import Path
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ServerSettings(BaseModel):
    """HTTP listener configuration."""
    host: str = Field(default="0.0.0.0", description="Interface to bind")
    port: int = Field(default=80, ge=1, le=65535, description="Listener port")
    base_url: str = Field(default="http://localhost", description="Public base URL used to build media links")
    default_channel: str = Field(default="lookonchainchannel", description="Channel served when a request names none")
    listener_restart_delay: float = Field(default=5.0, ge=0.0, description="Seconds to wait before restarting a failed listener")

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v):
        """Media links are joined with '/', so drop any trailing one."""
        return v.rstrip('/')

    @field_validator('default_channel')
    @classmethod
    def validate_default_channel(cls, v):
        if not v.strip():
            raise ValueError("default_channel must not be empty")
        return v.strip()


class UpstreamSettings(BaseModel):
    """Upstream feed fetch configuration."""
    url_template: str = Field(
        default="https://rsshub.app/telegram/channel/{source_id}",
        description="Feed URL for a source; '{source_id}' is substituted",
    )
    channel_link_template: str = Field(
        default="https://t.me/{source_id}",
        description="Canonical channel link written into served feeds",
    )
    request_timeout: int = Field(default=30, ge=1, le=300, description="Request timeout in seconds")
    max_attempts: int = Field(default=3, ge=1, le=10, description="Fetch attempts before giving up")
    base_delay: float = Field(default=2.0, ge=0.0, description="Backoff base delay in seconds")

    @field_validator('url_template', 'channel_link_template')
    @classmethod
    def validate_template(cls, v):
        if "{source_id}" not in v:
            raise ValueError("template must contain '{source_id}'")
        return v


class MediaSettings(BaseModel):
    """Media cache store configuration."""
    directory: str = Field(default="images", description="Root directory of the media store")
    download_timeout: int = Field(default=30, ge=1, le=300, description="Per-request download timeout in seconds")
    max_attempts: int = Field(default=3, ge=1, le=10, description="Download attempts before giving up")
    base_delay: float = Field(default=2.0, ge=0.0, description="Backoff base delay in seconds")


class SchedulerSettings(BaseModel):
    """Per-source refresh scheduling."""
    min_refresh_minutes: int = Field(default=10, ge=1, description="Lower bound of the randomized refresh interval")
    max_refresh_minutes: int = Field(default=15, ge=1, description="Upper bound of the randomized refresh interval")
    failure_retry_seconds: float = Field(default=60.0, ge=1.0, description="Delay after an exhausted refresh")
    max_attempts: int = Field(default=3, ge=1, le=10, description="Refresh attempts per tick")
    base_delay: float = Field(default=1.0, ge=0.0, description="Backoff base delay between refresh attempts")

    @model_validator(mode='after')
    def validate_bounds(self):
        if self.min_refresh_minutes > self.max_refresh_minutes:
            raise ValueError("min_refresh_minutes must not exceed max_refresh_minutes")
        return self


class FeedSettings(BaseModel):
    """Output document labels."""
    item_title: str = Field(default="[Photo]", description="Title written on every served item")
    fallback_title: str = Field(default="Telegram Channel", description="Channel title used when the upstream one is empty")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default=None, description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class FeedMirrorSettings(BaseSettings):
    """Main application settings."""

    server: ServerSettings = Field(default_factory=ServerSettings)
    upstream: UpstreamSettings = Field(default_factory=UpstreamSettings)
    media: MediaSettings = Field(default_factory=MediaSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    feed: FeedSettings = Field(default_factory=FeedSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="FeedMirror", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "FEEDMIRROR_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        try:
            Path(self.media.directory).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid media directory: {e}")

        if self.logging.file_path:
            try:
                Path(self.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> FeedMirrorSettings:
    """Load settings from environment variables and defaults.

    A bare ``PORT`` variable, as set by most hosting platforms, takes
    precedence over ``FEEDMIRROR_SERVER__PORT``.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = FeedMirrorSettings()

        port = os.getenv("PORT")
        if port:
            # Revalidate so the section bounds apply to the bare variable too
            settings.server = ServerSettings.model_validate(
                {**settings.server.model_dump(), "port": port}
            )

        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        )


# Global settings instance
_settings: Optional[FeedMirrorSettings] = None


def get_settings(reload: bool = False) -> FeedMirrorSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
