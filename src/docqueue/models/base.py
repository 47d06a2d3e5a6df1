"""Base model and persisted field names.

Example:
    >>> from docqueue.models.base import EARLIEST_GET_FIELD, payload_field
    >>> EARLIEST_GET_FIELD
    'earliestGet'
    >>> payload_field("type")
    'payload.type'
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

# Persisted document layout
ID_FIELD = "_id"
PAYLOAD_FIELD = "payload"
EARLIEST_GET_FIELD = "earliestGet"
PRIORITY_FIELD = "priority"
CREATED_FIELD = "created"


def payload_field(key: str) -> str:
    """Move a caller field name into the payload namespace."""
    return f"{PAYLOAD_FIELD}.{key}"


class DocQueueModel(BaseModel):
    """Base model with standard configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        frozen=True,
        extra="forbid",
    )
