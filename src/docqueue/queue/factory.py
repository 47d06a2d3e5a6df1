"""
Queue Factory - build a queue from a connection string.

Usage:
    from docqueue.queue.factory import create_queue

    # MongoDB
    queue = create_queue("mongodb://localhost:27017", "app", "jobs")

    # Unordered claims
    queue = create_queue("mongodb://localhost:27017", "app", "jobs", ordered=False)

    # Memory (for testing)
    queue = create_queue("memory://")

    # From environment (DOCQUEUE_URL, DOCQUEUE_DATABASE, DOCQUEUE_COLLECTION)
    queue = create_queue()
"""

from __future__ import annotations

import logging
from typing import Literal

from docqueue.core.config import Settings, get_settings
from docqueue.core.exceptions import ConfigurationError
from docqueue.protocols.collection import DocumentCollection
from docqueue.queue.base import AbstractQueue
from docqueue.queue.ordered import Queue
from docqueue.queue.unordered import UnorderedQueue
from docqueue.storage.memory import MemoryCollection
from docqueue.storage.mongodb import open_collection

logger = logging.getLogger(__name__)

BackendType = Literal["memory", "mongodb"]


def detect_backend(url: str) -> BackendType:
    """Detect the collection backend from a connection string.

    Example:
        >>> from docqueue.queue.factory import detect_backend
        >>> detect_backend("mongodb+srv://cluster.example.net")
        'mongodb'
        >>> detect_backend("memory://")
        'memory'
    """
    if url.startswith("memory://") or url == ":memory:":
        return "memory"

    if url.startswith(("mongodb://", "mongodb+srv://")):
        return "mongodb"

    raise ConfigurationError(f"Unsupported queue url: {url!r}")


def open_queue_collection(url: str, database: str, collection: str) -> DocumentCollection:
    """Open the collection named by a connection string."""
    backend = detect_backend(url)
    if backend == "memory":
        return MemoryCollection(collection, database=database)

    return open_collection(url, database, collection)


def create_queue(
    url: str | None = None,
    database: str | None = None,
    collection: str | None = None,
    *,
    ordered: bool = True,
    settings: Settings | None = None,
) -> AbstractQueue:
    """Create a queue from a connection string.

    Args:
        url: ``memory://``, ``mongodb://...`` or ``mongodb+srv://...``.
        database: Database name.
        collection: Collection name.
        ordered: Serve by priority then age; False claims in any order.
        settings: Fallback for missing arguments and the source of the
            queue's get() defaults (default: from environment).

    Returns:
        A Queue or UnorderedQueue over the collection.

    Raises:
        ConfigurationError: If the url scheme is not supported.

    Example:
        >>> from docqueue.queue.factory import create_queue
        >>> q = create_queue("memory://", "app", "jobs")
        >>> type(q).__name__, q.collection.full_name
        ('Queue', 'app.jobs')
    """
    if settings is None:
        settings = get_settings()

    url = url or settings.url
    database = database or settings.database
    collection = collection or settings.collection

    queue_class = Queue if ordered else UnorderedQueue
    logger.debug(f"Creating {queue_class.__name__} on {database}.{collection}")
    return queue_class(
        open_queue_collection(url, database, collection),
        running_reset_duration=settings.running_reset_duration,
        wait_duration=settings.wait_duration,
        poll_interval=settings.poll_interval,
        limit=settings.limit,
    )
