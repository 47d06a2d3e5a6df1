"""
docqueue - Priority and Delay Queue on a Document Collection.

docqueue turns a MongoDB collection into a message queue. There is no broker
process: each message is one document, and claiming, acking and requeueing
are single-document atomic operations on the collection.

Key Features:
- Priority ordering (lower first), oldest first among equal priorities
- Delayed delivery via an earliest-get timestamp
- Visibility timeout: unacked messages reappear by themselves
- Atomic ack-and-send / requeue that survive out-of-band deletes
- Idempotent creation of the indexes get() and count() need

Quick Start:
    >>> from docqueue import Queue, MemoryCollection
    >>> queue = Queue(MemoryCollection())
    >>> # await queue.send({"task": "resize"}, priority=0.5)
    >>> # [message] = await queue.get({"task": "resize"}, running_reset_duration=60)
    >>> # await queue.ack(message)

Architecture:
    Queues: Queue, UnorderedQueue
    Collections: MemoryCollection, Motor (via open_collection)
"""

from docqueue.core.config import Settings, get_settings
from docqueue.core.exceptions import (
    ConfigurationError,
    DocQueueError,
    IndexCreationError,
    ValidationError,
)
from docqueue.models.message import Message
from docqueue.models.query import Query
from docqueue.protocols.collection import DocumentCollection
from docqueue.protocols.queue import MessageQueue
from docqueue.queue.base import AbstractQueue
from docqueue.queue.factory import create_queue
from docqueue.queue.ordered import Queue
from docqueue.queue.unordered import UnorderedQueue
from docqueue.storage.memory import MemoryCollection
from docqueue.storage.mongodb import open_collection
from docqueue.utils.timestamps import MAX_TIMESTAMP, MIN_TIMESTAMP

__all__ = [
    # Queues
    "AbstractQueue",
    "Queue",
    "UnorderedQueue",
    "create_queue",
    # Models
    "Message",
    "Query",
    # Protocols
    "DocumentCollection",
    "MessageQueue",
    # Collections
    "MemoryCollection",
    "open_collection",
    # Config
    "Settings",
    "get_settings",
    # Errors
    "ConfigurationError",
    "DocQueueError",
    "IndexCreationError",
    "ValidationError",
    # Limits
    "MAX_TIMESTAMP",
    "MIN_TIMESTAMP",
]

__version__ = "0.1.0"
