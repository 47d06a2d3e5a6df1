"""Message value object.

A message is one document in the queue collection. Instances are immutable;
the ``with_*`` helpers validate the changed field and return a modified copy,
so a NaN priority can never be attached to a message after construction
either. Invalid input always raises ``docqueue.core.exceptions.ValidationError``.

Example:
    >>> from docqueue.models.message import Message
    >>> m = Message(payload={"task": "resize"}, priority=0.5)
    >>> m.payload
    {'task': 'resize'}
    >>> m.with_priority(0.1).priority
    0.1
    >>> m.priority
    0.5
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime
from typing import Any

import pydantic
from bson import ObjectId
from pydantic import Field, field_validator

from docqueue.core.exceptions import ValidationError
from docqueue.models.base import (
    CREATED_FIELD,
    EARLIEST_GET_FIELD,
    ID_FIELD,
    PAYLOAD_FIELD,
    PRIORITY_FIELD,
    DocQueueModel,
)
from docqueue.utils.timestamps import to_timestamp, utcnow


def validate_priority(priority: Any) -> float:
    """Return priority as a float, rejecting NaN and non-numbers.

    Raises:
        ValidationError: If priority is NaN or not a real number.

    Example:
        >>> from docqueue.models.message import validate_priority
        >>> validate_priority(1)
        1.0
    """
    if isinstance(priority, bool) or not isinstance(priority, (int, float)):
        raise ValidationError("priority was not a number")
    value = float(priority)
    if math.isnan(value):
        raise ValidationError("priority was NaN")
    return value


def _describe(exc: pydantic.ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'message'}: {error['msg']}"
        for error in exc.errors()
    )


class Message(DocQueueModel):
    """A message in the queue.

    Attributes:
        id: Unique id, used as the document ``_id``.
        payload: Caller data; never interpreted except for query matching.
        earliest_get: Message is hidden from ``get()`` until this instant.
        priority: Lower values are served first.

    Example:
        >>> from docqueue.models.message import Message
        >>> m = Message(payload={"a": 1}, earliest_get=0)
        >>> m.earliest_get.isoformat()
        '1970-01-01T00:00:00+00:00'
        >>> m.priority
        0.0
    """

    id: Any = Field(default_factory=ObjectId)
    payload: dict[str, Any] = Field(default_factory=dict)
    earliest_get: datetime = Field(default_factory=utcnow)
    priority: float = 0.0

    def __init__(self, **data: Any) -> None:
        """Validate fields, raising ValidationError for bad input."""
        try:
            super().__init__(**data)
        except pydantic.ValidationError as exc:
            raise ValidationError(_describe(exc)) from exc

    @field_validator("earliest_get", mode="before")
    @classmethod
    def _clamp_earliest_get(cls, value: Any) -> datetime:
        return to_timestamp(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _check_priority(cls, value: Any) -> float:
        return validate_priority(value)

    # --- Copy-on-write helpers ---

    def with_payload(self, payload: Mapping[str, Any]) -> Message:
        """Return a copy carrying a different payload."""
        if not isinstance(payload, Mapping):
            raise ValidationError("payload was not a mapping")
        return self.model_copy(update={"payload": dict(payload)})

    def with_earliest_get(self, earliest_get: datetime | float) -> Message:
        """Return a copy that becomes visible at a different time."""
        return self.model_copy(update={"earliest_get": to_timestamp(earliest_get)})

    def with_priority(self, priority: float) -> Message:
        """Return a copy with a different priority.

        Example:
            >>> from docqueue.models.message import Message
            >>> Message().with_priority(float("nan"))  # doctest: +IGNORE_EXCEPTION_DETAIL
            Traceback (most recent call last):
            docqueue.core.exceptions.ValidationError: priority was NaN
        """
        return self.model_copy(update={"priority": validate_priority(priority)})

    # --- Persistence ---

    def to_document(self, created: datetime) -> dict[str, Any]:
        """Build the stored document for this message."""
        return {
            ID_FIELD: self.id,
            PAYLOAD_FIELD: dict(self.payload),
            EARLIEST_GET_FIELD: self.earliest_get,
            PRIORITY_FIELD: self.priority,
            CREATED_FIELD: created,
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> Message:
        """Rebuild a message from a stored document.

        Raises:
            ValidationError: If the document lacks a queue field or holds an
                invalid value, e.g. one written by another client.
        """
        missing = [f for f in (ID_FIELD, EARLIEST_GET_FIELD, PRIORITY_FIELD) if f not in document]
        if missing:
            raise ValidationError(f"document {document.get(ID_FIELD)!r} is missing {', '.join(missing)}")
        return cls(
            id=document[ID_FIELD],
            payload=document.get(PAYLOAD_FIELD) or {},
            earliest_get=document[EARLIEST_GET_FIELD],
            priority=document[PRIORITY_FIELD],
        )
