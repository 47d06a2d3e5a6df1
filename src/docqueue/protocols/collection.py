"""Document collection protocol.

Defines the subset of an async MongoDB collection the queue relies on. The
queue never reads a document and writes it back in a separate round trip;
every state change is one of these single-document atomic calls.

Example:
    >>> from docqueue.protocols.collection import DocumentCollection
    >>> from docqueue.storage.memory import MemoryCollection
    >>> isinstance(MemoryCollection(), DocumentCollection)
    True
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DocumentCollection(Protocol):
    """Async document collection protocol.

    Motor's ``AsyncIOMotorCollection`` satisfies this structurally.

    See Also:
        docqueue.storage.memory.MemoryCollection: In-memory implementation
    """

    async def find_one_and_update(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        projection: Any = None,
        sort: Sequence[tuple[str, int]] | None = None,
        upsert: bool = False,
        return_document: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        """Atomically update the first matching document and return it."""
        ...

    async def insert_one(self, document: Mapping[str, Any], **kwargs: Any) -> Any:
        """Insert one document."""
        ...

    async def delete_one(self, filter: Mapping[str, Any], **kwargs: Any) -> Any:
        """Delete at most one matching document."""
        ...

    async def update_one(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        upsert: bool = False,
        **kwargs: Any,
    ) -> Any:
        """Update at most one matching document, optionally inserting it."""
        ...

    async def count_documents(self, filter: Mapping[str, Any], **kwargs: Any) -> int:
        """Count matching documents."""
        ...

    def list_indexes(self, **kwargs: Any) -> AsyncIterator[Mapping[str, Any]]:
        """Iterate index descriptions (each with ``key`` and ``name``)."""
        ...

    async def create_index(self, keys: Any, **kwargs: Any) -> str:
        """Create an index, returning its name."""
        ...
