"""MongoDB collections via Motor.

The queue talks to Motor's ``AsyncIOMotorCollection`` directly; this module
only opens clients with the codec options the queue expects. Dates must come
back timezone-aware in UTC so they compare correctly with ``utcnow()``.

Example:
    >>> from docqueue.storage.mongodb import open_collection
    >>> coll = open_collection("mongodb://localhost:27017", "docqueue", "messages")
    >>> coll.name
    'messages'
"""

from __future__ import annotations

import logging
from datetime import UTC
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection

logger = logging.getLogger(__name__)


def create_client(url: str, **options: Any) -> AsyncIOMotorClient:
    """Create a Motor client returning UTC-aware datetimes.

    Args:
        url: MongoDB connection string.
        **options: Extra ``MongoClient`` options; override the defaults.

    Returns:
        A lazily connecting client.
    """
    settings: dict[str, Any] = {"tz_aware": True, "tzinfo": UTC}
    settings.update(options)
    return AsyncIOMotorClient(url, **settings)


def open_collection(
    url: str,
    database: str,
    collection: str,
    *,
    client: AsyncIOMotorClient | None = None,
) -> AsyncIOMotorCollection:
    """Open the queue collection.

    Args:
        url: MongoDB connection string (ignored when client is given).
        database: Database name.
        collection: Collection name.
        client: Existing client to reuse.

    Returns:
        The collection handle. No round trip happens until first use.
    """
    if client is None:
        client = create_client(url)
    logger.debug(f"Opening collection {database}.{collection}")
    return client[database][collection]
