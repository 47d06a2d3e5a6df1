"""Protocol definitions - all extension points."""

from docqueue.protocols.collection import DocumentCollection
from docqueue.protocols.queue import MessageQueue

__all__ = [
    "DocumentCollection",
    "MessageQueue",
]
