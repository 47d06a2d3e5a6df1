"""Queue implementations.

Quick Start:
    from docqueue.queue import Queue, create_queue
    from docqueue.storage import MemoryCollection

    queue = Queue(MemoryCollection())
    queue = create_queue("mongodb://localhost:27017", "app", "jobs")

    await queue.ensure_get_index()
    await queue.send({"task": "resize", "image": 42}, priority=0.5)
    for message in await queue.get({"task": "resize"}, running_reset_duration=60):
        ...
        await queue.ack(message)
"""

from docqueue.queue.base import (
    DEFAULT_LIMIT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RUNNING_RESET_DURATION,
    DEFAULT_WAIT_DURATION,
    AbstractQueue,
)
from docqueue.queue.factory import create_queue, detect_backend
from docqueue.queue.indexes import MAX_INDEX_ATTEMPTS, IndexPlanner
from docqueue.queue.ordered import Queue
from docqueue.queue.unordered import UnorderedQueue

__all__ = [
    "DEFAULT_LIMIT",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_RUNNING_RESET_DURATION",
    "DEFAULT_WAIT_DURATION",
    "MAX_INDEX_ATTEMPTS",
    "AbstractQueue",
    "IndexPlanner",
    "Queue",
    "UnorderedQueue",
    "create_queue",
    "detect_backend",
]
