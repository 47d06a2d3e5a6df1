"""docqueue configuration.

Settings loaded from environment variables with the DOCQUEUE_ prefix.

Example:
    >>> from docqueue.core.config import get_settings
    >>> settings = get_settings(log_level="DEBUG")
    >>> settings.log_level
    'DEBUG'
    >>> settings.collection
    'messages'
"""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Loads from environment variables with DOCQUEUE_ prefix.

    Example:
        >>> from docqueue.core.config import Settings
        >>> s = Settings(url="memory://")
        >>> s.url
        'memory://'
        >>> s.poll_interval
        0.2
    """

    model_config = SettingsConfigDict(
        env_prefix="DOCQUEUE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Connection
    url: str = Field(default="mongodb://localhost:27017", description="Store connection URL")
    database: str = Field(default="docqueue", min_length=1, description="Database name")
    collection: str = Field(default="messages", min_length=1, description="Queue collection name")

    # get() defaults, all durations in seconds
    running_reset_duration: float = Field(
        default=600.0, ge=0.0, description="How long a claimed message stays invisible"
    )
    wait_duration: float = Field(default=3.0, ge=0.0, description="How long get() waits for messages")
    poll_interval: float = Field(default=0.2, ge=0.0, description="Sleep between empty claim attempts")
    limit: int = Field(default=1, ge=1, description="Maximum messages returned by get()")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")


def get_settings(**overrides: Any) -> Settings:
    """Get settings with optional overrides.

    Example:
        >>> from docqueue.core.config import get_settings
        >>> s = get_settings(wait_duration=0.5)
        >>> s.wait_duration
        0.5
    """
    return Settings(**overrides)
