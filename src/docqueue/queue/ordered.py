"""Priority ordered queue.

Tied priorities are served oldest first, so a single priority gives plain
FIFO behaviour and random priorities give a random get().

Example:
    >>> from docqueue.queue.ordered import Queue
    >>> Queue.claim_sort
    [('priority', 1), ('created', 1)]
"""

from __future__ import annotations

from typing import ClassVar

from pymongo import ASCENDING

from docqueue.models.base import CREATED_FIELD, PRIORITY_FIELD
from docqueue.queue.base import AbstractQueue


class Queue(AbstractQueue):
    """Collection-backed queue serving lowest priority, then oldest, first.

    Example:
        >>> from docqueue.queue.ordered import Queue
        >>> from docqueue.storage.memory import MemoryCollection
        >>> queue = Queue(MemoryCollection())
        >>> queue.collection.name
        'messages'
    """

    claim_sort: ClassVar[list[tuple[str, int]]] = [
        (PRIORITY_FIELD, ASCENDING),
        (CREATED_FIELD, ASCENDING),
    ]
