"""Collection-backed queue.

The collection itself is the queue: one document per message, and every state
transition is a single-document atomic operation on it.

A message is visible when its ``earliestGet`` is at or before now. Claiming
a message in ``get()`` is one ``find_one_and_update`` that moves
``earliestGet`` forward by the visibility timeout, so the message reappears
on its own if the consumer never acks it. There is no separate "running" flag
and no sweep for stuck messages.

Example:
    >>> import asyncio
    >>> from docqueue.queue.ordered import Queue
    >>> from docqueue.storage.memory import MemoryCollection
    >>> async def example():
    ...     queue = Queue(MemoryCollection())
    ...     await queue.send({"task": "b"}, priority=0.5)
    ...     await queue.send({"task": "a"}, priority=0.1)
    ...     [message] = await queue.get({}, wait_duration=0)
    ...     await queue.ack(message)
    ...     return message.payload
    >>> asyncio.run(example())
    {'task': 'a'}
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, ClassVar

from pymongo import ReturnDocument

from docqueue.core.exceptions import ValidationError
from docqueue.models.base import (
    CREATED_FIELD,
    EARLIEST_GET_FIELD,
    ID_FIELD,
    PAYLOAD_FIELD,
    PRIORITY_FIELD,
)
from docqueue.models.message import Message, validate_priority
from docqueue.models.query import PayloadQuery, build_payload_query
from docqueue.protocols.collection import DocumentCollection
from docqueue.queue.indexes import IndexPlanner
from docqueue.utils.timestamps import add_duration, to_timestamp, utcnow, validate_duration

logger = logging.getLogger(__name__)

DEFAULT_RUNNING_RESET_DURATION = 600.0
DEFAULT_WAIT_DURATION = 3.0
DEFAULT_POLL_INTERVAL = 0.2
DEFAULT_LIMIT = 1


class AbstractQueue:
    """Queue operations shared by the ordered and unordered queues.

    Subclasses only choose the sort applied when claiming.

    Args:
        collection: Collection holding the queue's documents.
        running_reset_duration: Default visibility timeout for get(), in seconds.
        wait_duration: Default time get() waits for messages, in seconds.
        poll_interval: Default sleep between empty claim attempts, in seconds.
        limit: Default maximum batch size for get().
    """

    claim_sort: ClassVar[Sequence[tuple[str, int]] | None] = None

    def __init__(
        self,
        collection: DocumentCollection,
        *,
        running_reset_duration: float = DEFAULT_RUNNING_RESET_DURATION,
        wait_duration: float = DEFAULT_WAIT_DURATION,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        self._collection = collection
        self._indexes = IndexPlanner(collection)
        self.running_reset_duration = running_reset_duration
        self.wait_duration = wait_duration
        self.poll_interval = poll_interval
        self.limit = limit

    @property
    def collection(self) -> DocumentCollection:
        """Get the underlying collection."""
        return self._collection

    # --- Index Operations ---

    async def ensure_get_index(
        self,
        before_sort: Mapping[str, int] | None = None,
        after_sort: Mapping[str, int] | None = None,
    ) -> None:
        """Ensure an index for get().

        Args:
            before_sort: Payload fields to index ahead of the sort fields,
                mapping field name to ``1`` or ``-1``.
            after_sort: Payload fields to index after the sort fields.

        Raises:
            ValidationError: If a key is not a string or a direction is not 1/-1.
            IndexCreationError: If the index could not be created.
        """
        await self._indexes.ensure_get_index(before_sort, after_sort)

    async def ensure_count_index(self, fields: Mapping[str, int], include_running: bool) -> None:
        """Ensure an index for count().

        Is a no-op if the generated index is a prefix of an existing one. If
        there is a similar ensure_get_index() call, make it first.

        Args:
            fields: Payload fields to index, mapping name to ``1`` or ``-1``.
            include_running: Lead the index with the visibility field, for
                count() calls that pass ``running``.
        """
        await self._indexes.ensure_count_index(fields, include_running)

    # --- Consumer Operations ---

    async def get(
        self,
        query: PayloadQuery = None,
        running_reset_duration: float | None = None,
        wait_duration: float | None = None,
        poll_interval: float | None = None,
        limit: int | None = None,
    ) -> list[Message]:
        """Claim up to limit visible messages.

        Claimed messages stay hidden from other get() calls for
        running_reset_duration seconds, then become visible again unless
        acked or requeued. Arguments left as None use the queue's defaults.

        Args:
            query: Conditions on payload fields. Top-level keys must be plain
                field names (``{"a": {"$gt": 1}, "b.c": 3}`` is fine,
                ``{"$and": [...]}`` is not).
            running_reset_duration: Visibility timeout in seconds.
            wait_duration: Seconds to keep polling while nothing is claimable.
            poll_interval: Seconds to sleep between empty attempts; negative
                values are treated as zero.
            limit: Maximum number of messages to return.

        Returns:
            Claimed messages, empty if none became available in time.

        Raises:
            ValidationError: For a non-string query key, a NaN or
                non-numeric duration, or a limit below one. Also raised when
                the first claimed document is not a valid message; a bad
                document later in a batch ends the batch early instead.
        """
        if running_reset_duration is None:
            running_reset_duration = self.running_reset_duration
        if wait_duration is None:
            wait_duration = self.wait_duration
        if poll_interval is None:
            poll_interval = self.poll_interval
        if limit is None:
            limit = self.limit

        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit must be a positive integer")
        running_reset_duration = validate_duration(running_reset_duration, "running_reset_duration")
        wait_duration = validate_duration(wait_duration, "wait_duration")
        sleep_time = max(validate_duration(poll_interval, "poll_interval"), 0.0)
        payload_query = build_payload_query({}, query)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(wait_duration, 0.0)
        messages: list[Message] = []

        while len(messages) < limit:
            try:
                message = await self._try_claim(payload_query, running_reset_duration, messages)
            except ValidationError as exc:
                if not messages:
                    raise
                # Keep what was already claimed; the bad document stays hidden.
                logger.warning(f"Ending batch early on unreadable document: {exc}")
                break
            if message is not None:
                messages.append(message)
                continue

            if messages or loop.time() >= deadline:
                break

            await asyncio.sleep(sleep_time)

        return messages

    async def _try_claim(
        self,
        payload_query: dict[str, Any],
        running_reset_duration: float,
        claimed: list[Message],
    ) -> Message | None:
        now = utcnow()
        complete_query = {EARLIEST_GET_FIELD: {"$lte": now}, **payload_query}
        if claimed:
            # A zero visibility timeout leaves claimed messages visible.
            complete_query[ID_FIELD] = {"$nin": [m.id for m in claimed]}
        update = {"$set": {EARLIEST_GET_FIELD: add_duration(now, running_reset_duration)}}

        document = await self._collection.find_one_and_update(
            complete_query,
            update,
            sort=self.claim_sort,
            return_document=ReturnDocument.AFTER,
        )
        if document is None:
            return None

        message = Message.from_document(document)
        logger.debug(f"Claimed message {message.id} until {message.earliest_get.isoformat()}")
        return message

    async def count(self, query: PayloadQuery = None, running: bool | None = None) -> int:
        """Count queue messages.

        Args:
            query: Conditions on payload fields, same rules as get().
            running: True counts only claimed/delayed messages, False only
                visible ones, None counts all.

        Raises:
            ValidationError: If a query key is not a string.
        """
        initial: dict[str, Any] = {}
        if running is not None:
            operator = "$gt" if running else "$lte"
            initial[EARLIEST_GET_FIELD] = {operator: utcnow()}

        return await self._collection.count_documents(build_payload_query(initial, query))

    async def ack(self, message: Message) -> None:
        """Acknowledge a message was processed and remove it from the queue.

        Acking a message that no longer exists is not an error.
        """
        await self._collection.delete_one({ID_FIELD: message.id})
        logger.debug(f"Acked message {message.id}")

    async def ack_send(
        self,
        message: Message,
        payload: Mapping[str, Any],
        earliest_get: datetime | float = 0,
        priority: float = 0.0,
        new_timestamp: bool = True,
    ) -> None:
        """Atomically acknowledge a message and send a replacement.

        The document keeps its id. If it was removed in the meantime it is
        recreated, since the work it represented is still done.

        Args:
            message: Message received from get().
            payload: Payload of the replacement.
            earliest_get: Datetime or epoch seconds before which the
                replacement is hidden.
            priority: Priority of the replacement; lower is served first.
            new_timestamp: Refresh ``created`` so the replacement queues
                behind equal-priority messages; otherwise keep its place.

        Raises:
            ValidationError: If priority is NaN or payload is not a mapping.
        """
        to_set = {
            PAYLOAD_FIELD: self._validate_payload(payload),
            EARLIEST_GET_FIELD: self._validate_earliest_get(earliest_get),
            PRIORITY_FIELD: validate_priority(priority),
        }
        update: dict[str, Any] = {"$set": to_set}
        if new_timestamp:
            to_set[CREATED_FIELD] = utcnow()
        else:
            update["$setOnInsert"] = {CREATED_FIELD: utcnow()}

        await self._collection.update_one({ID_FIELD: message.id}, update, upsert=True)
        logger.debug(f"Ack-sent message {message.id}")

    async def requeue(
        self,
        message: Message,
        earliest_get: datetime | float | None = None,
        priority: float | None = None,
        new_timestamp: bool = True,
    ) -> None:
        """Atomically put a message back on the queue with its own payload.

        Args:
            message: Message received from get().
            earliest_get: New visibility time; defaults to the message's.
            priority: New priority; defaults to the message's.
            new_timestamp: See ack_send().
        """
        await self.ack_send(
            message,
            message.payload,
            message.earliest_get if earliest_get is None else earliest_get,
            message.priority if priority is None else priority,
            new_timestamp=new_timestamp,
        )

    # --- Producer Operations ---

    async def send(
        self,
        payload: Mapping[str, Any],
        earliest_get: datetime | float = 0,
        priority: float = 0.0,
    ) -> Message:
        """Send a message to the queue.

        Args:
            payload: Data to store in the message.
            earliest_get: Datetime or epoch seconds before which the message
                cannot be retrieved; clamped into the storable range.
            priority: Lower is served first; ties are served oldest first.

        Returns:
            The stored message.

        Raises:
            ValidationError: If priority is NaN or payload is not a mapping.
        """
        message = Message(
            payload=self._validate_payload(payload),
            earliest_get=self._validate_earliest_get(earliest_get),
            priority=validate_priority(priority),
        )
        await self.send_message(message)
        return message

    async def send_message(self, message: Message) -> None:
        """Send a prepared message under its own id."""
        await self._collection.insert_one(message.to_document(created=utcnow()))
        logger.debug(f"Sent message {message.id} with priority {message.priority}")

    # --- Helpers ---

    @staticmethod
    def _validate_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(payload, Mapping):
            raise ValidationError("payload was not a mapping")
        return dict(payload)

    @staticmethod
    def _validate_earliest_get(earliest_get: datetime | float) -> datetime:
        return to_timestamp(earliest_get)
