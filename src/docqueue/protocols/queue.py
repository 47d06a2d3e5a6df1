"""Message queue protocol.

Defines the public interface of a collection-backed queue.

Example:
    >>> from docqueue.protocols.queue import MessageQueue
    >>> hasattr(MessageQueue, "get")
    True
    >>> hasattr(MessageQueue, "ack_send")
    True
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from docqueue.models.message import Message
    from docqueue.models.query import PayloadQuery


@runtime_checkable
class MessageQueue(Protocol):
    """Message queue protocol.

    See Also:
        docqueue.queue.ordered.Queue: Priority ordered implementation
        docqueue.queue.unordered.UnorderedQueue: Unordered implementation
    """

    # --- Index Operations ---

    async def ensure_get_index(
        self,
        before_sort: Mapping[str, int] | None = None,
        after_sort: Mapping[str, int] | None = None,
    ) -> None:
        """Ensure an index covering get() for the given payload fields."""
        ...

    async def ensure_count_index(self, fields: Mapping[str, int], include_running: bool) -> None:
        """Ensure an index covering count() for the given payload fields."""
        ...

    # --- Consumer Operations ---

    async def get(
        self,
        query: PayloadQuery = None,
        running_reset_duration: float | None = None,
        wait_duration: float | None = None,
        poll_interval: float | None = None,
        limit: int | None = None,
    ) -> list[Message]:
        """Claim up to limit visible messages matching query."""
        ...

    async def count(self, query: PayloadQuery = None, running: bool | None = None) -> int:
        """Count messages, optionally only running or only visible ones."""
        ...

    async def ack(self, message: Message) -> None:
        """Remove a processed message."""
        ...

    async def ack_send(
        self,
        message: Message,
        payload: Mapping[str, Any],
        earliest_get: datetime | float = 0,
        priority: float = 0.0,
        new_timestamp: bool = True,
    ) -> None:
        """Atomically replace a message with new content."""
        ...

    async def requeue(
        self,
        message: Message,
        earliest_get: datetime | float | None = None,
        priority: float | None = None,
        new_timestamp: bool = True,
    ) -> None:
        """Atomically put a claimed message back on the queue."""
        ...

    # --- Producer Operations ---

    async def send(
        self,
        payload: Mapping[str, Any],
        earliest_get: datetime | float = 0,
        priority: float = 0.0,
    ) -> Message:
        """Insert a new message."""
        ...

    async def send_message(self, message: Message) -> None:
        """Insert a prepared message under its own id."""
        ...
