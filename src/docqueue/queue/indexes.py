"""Index planning for the queue collection.

Builds the compound indexes that cover ``get()`` and ``count()`` and creates
them idempotently. An index is skipped when its key pattern is a prefix of an
existing index. Otherwise creation is attempted under generated names: the
store refuses a second name for an existing key pattern and a second key
pattern for an existing name, so after every attempt the planner simply checks
whether an index with the wanted key pattern exists, under whatever name.

Example:
    >>> from docqueue.queue.indexes import IndexPlanner
    >>> IndexPlanner.get_index_fields({"type": 1}, {"boo": -1})
    {'earliestGet': 1, 'payload.type': 1, 'priority': 1, 'created': 1, 'payload.boo': -1}
    >>> IndexPlanner.count_index_fields({"type": 1}, include_running=True)
    {'earliestGet': 1, 'payload.type': 1}
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping

from bson import ObjectId
from pymongo.errors import OperationFailure

from docqueue.core.exceptions import IndexCreationError
from docqueue.models.base import CREATED_FIELD, EARLIEST_GET_FIELD, PRIORITY_FIELD
from docqueue.models.query import ASCENDING, build_index_fields
from docqueue.protocols.collection import DocumentCollection

logger = logging.getLogger(__name__)

MAX_INDEX_ATTEMPTS = 5

IndexKey = list[tuple[str, int]]


def generate_index_name() -> str:
    """Return a fresh unique index name."""
    return str(ObjectId())


class IndexPlanner:
    """Creates the queue's indexes without duplicates.

    Args:
        collection: Collection to index.
        name_factory: Produces candidate index names; each attempt starts
            from a new name and shortens it one character at a time.
    """

    def __init__(
        self,
        collection: DocumentCollection,
        name_factory: Callable[[], str] = generate_index_name,
    ) -> None:
        self._collection = collection
        self._name_factory = name_factory

    # --- Key Patterns ---

    @staticmethod
    def get_index_fields(
        before_sort: Mapping[str, int] | None = None,
        after_sort: Mapping[str, int] | None = None,
    ) -> dict[str, int]:
        """Key pattern for get(): equality/range, then sort, then more fields.

        Raises:
            ValidationError: If a key is not a string or a direction is not 1/-1.
        """
        complete = {EARLIEST_GET_FIELD: ASCENDING}
        build_index_fields(before_sort, "before_sort", complete)
        complete[PRIORITY_FIELD] = ASCENDING
        complete[CREATED_FIELD] = ASCENDING
        build_index_fields(after_sort, "after_sort", complete)
        return complete

    @staticmethod
    def count_index_fields(fields: Mapping[str, int], include_running: bool) -> dict[str, int]:
        """Key pattern for count(), optionally led by the visibility field.

        Raises:
            ValidationError: If a key is not a string or a direction is not 1/-1.
        """
        complete: dict[str, int] = {}
        if include_running:
            complete[EARLIEST_GET_FIELD] = ASCENDING
        build_index_fields(fields, "fields", complete)
        return complete

    # --- Creation ---

    async def ensure_get_index(
        self,
        before_sort: Mapping[str, int] | None = None,
        after_sort: Mapping[str, int] | None = None,
    ) -> None:
        """Ensure the index used by get() exists."""
        await self.ensure_index(self.get_index_fields(before_sort, after_sort))

    async def ensure_count_index(self, fields: Mapping[str, int], include_running: bool) -> None:
        """Ensure the index used by count() exists.

        A no-op when the pattern is a prefix of an existing index, so call
        a matching ensure_get_index() first.
        """
        await self.ensure_index(self.count_index_fields(fields, include_running))

    async def ensure_index(self, index: Mapping[str, int]) -> None:
        """Ensure an index with this key pattern (or one it prefixes) exists.

        Raises:
            IndexCreationError: If the index still does not exist after
                MAX_INDEX_ATTEMPTS attempts.
        """
        key: IndexKey = list(index.items())
        if not key:
            return
        if await self._is_covered(key):
            logger.debug(f"Index {key} covered by an existing index")
            return

        for attempt in range(1, MAX_INDEX_ATTEMPTS + 1):
            name = await self._try_create(key)
            if name is not None:
                logger.info(f"Ensured index {key} on attempt {attempt}")
                return

        raise IndexCreationError(f"couldnt create index after {MAX_INDEX_ATTEMPTS} attempts")

    async def _try_create(self, key: IndexKey) -> str | None:
        name = self._name_factory()
        while name:
            if await self._try_create_named(key, name):
                return name
            name = name[:-1]
        return None

    async def _try_create_named(self, key: IndexKey, name: str) -> bool:
        try:
            await self._collection.create_index(key, name=name, background=True)
        except OperationFailure as exc:
            # Name too long, or name/key pattern already taken.
            logger.debug(f"Index name {name!r} rejected: {exc}")
        return await self._exists(key)

    # --- Introspection ---

    async def _existing_keys(self) -> list[IndexKey]:
        keys: list[IndexKey] = []
        async for description in self._collection.list_indexes():
            keys.append(list(description["key"].items()))
        return keys

    async def _is_covered(self, key: IndexKey) -> bool:
        return any(existing[: len(key)] == key for existing in await self._existing_keys())

    async def _exists(self, key: IndexKey) -> bool:
        return any(existing == key for existing in await self._existing_keys())
