"""Collection backends.

Quick Start:
    from docqueue.storage import MemoryCollection, open_collection

    coll = MemoryCollection()                                   # In-memory
    coll = open_collection("mongodb://localhost", "db", "jobs")  # MongoDB
"""

from docqueue.storage.memory import MemoryCollection, matches
from docqueue.storage.mongodb import create_client, open_collection

__all__ = [
    "MemoryCollection",
    "create_client",
    "matches",
    "open_collection",
]
