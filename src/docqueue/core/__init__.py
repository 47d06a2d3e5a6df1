"""Core configuration and exceptions."""

from docqueue.core.config import Settings, get_settings
from docqueue.core.exceptions import (
    ConfigurationError,
    DocQueueError,
    IndexCreationError,
    ValidationError,
)

__all__ = [
    "ConfigurationError",
    "DocQueueError",
    "IndexCreationError",
    "Settings",
    "ValidationError",
    "get_settings",
]
