"""In-memory document collection for testing.

Provides a complete in-memory implementation of DocumentCollection with the
slice of MongoDB's query and update language the queue uses, useful for
testing, development and single-process applications.

Example:
    >>> import asyncio
    >>> from docqueue.storage.memory import MemoryCollection
    >>> coll = MemoryCollection()
    >>> _ = asyncio.run(coll.insert_one({"_id": 1, "payload": {"n": 5}}))
    >>> asyncio.run(coll.count_documents({"payload.n": {"$gte": 5}}))
    1

Note:
    All methods are async. Each call runs as one critical section, so
    concurrent ``find_one_and_update`` calls never claim the same document.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import AsyncIterator, Mapping, Sequence
from datetime import datetime
from typing import Any

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, OperationFailure
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult

# Classic MongoDB limit on "<db>.<collection>.$<index name>".
MAX_NAMESPACE_LENGTH = 127

_ID_INDEX = "_id_"

# Cross-type sort order (subset of BSON comparison order)
_TYPE_ORDER = {
    "null": 1,
    "number": 2,
    "string": 3,
    "object": 4,
    "array": 5,
    "objectid": 7,
    "bool": 8,
    "date": 9,
}


class MemoryCollection:
    """In-memory collection using dictionaries.

    Thread-safe: every operation holds an internal lock for its whole
    read-modify-write. Data is lost when the process exits.

    Best for: Testing, development, single-process apps.

    Example:
        >>> from docqueue.storage.memory import MemoryCollection
        >>> c = MemoryCollection("jobs", database="work")
        >>> c.full_name
        'work.jobs'
    """

    def __init__(self, name: str = "messages", database: str = "docqueue") -> None:
        self.name = name
        self.database = database
        self._documents: dict[Any, dict[str, Any]] = {}
        self._indexes: dict[str, list[tuple[str, int]]] = {_ID_INDEX: [("_id", 1)]}
        self._lock = threading.Lock()

    @property
    def full_name(self) -> str:
        """Namespace of this collection."""
        return f"{self.database}.{self.name}"

    # --- Write Operations ---

    async def insert_one(self, document: Mapping[str, Any], **kwargs: Any) -> InsertOneResult:
        """Insert one document, generating ``_id`` when absent."""
        stored = copy.deepcopy(dict(document))
        stored.setdefault("_id", ObjectId())
        with self._lock:
            if stored["_id"] in self._documents:
                raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.full_name}")
            self._documents[stored["_id"]] = stored
        return InsertOneResult(stored["_id"], True)

    async def delete_one(self, filter: Mapping[str, Any], **kwargs: Any) -> DeleteResult:
        """Delete the first matching document."""
        with self._lock:
            document = self._first(filter, None)
            if document is None:
                return DeleteResult({"n": 0, "ok": 1.0}, True)
            del self._documents[document["_id"]]
        return DeleteResult({"n": 1, "ok": 1.0}, True)

    async def update_one(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        upsert: bool = False,
        **kwargs: Any,
    ) -> UpdateResult:
        """Update the first matching document, inserting it on upsert."""
        with self._lock:
            document = self._first(filter, None)
            if document is not None:
                self._store(_apply_update(document, update, inserting=False))
                return UpdateResult({"n": 1, "nModified": 1, "ok": 1.0}, True)
            if not upsert:
                return UpdateResult({"n": 0, "nModified": 0, "ok": 1.0}, True)
            created = self._store(_apply_update(_seed_from_filter(filter), update, inserting=True))
        return UpdateResult({"n": 1, "nModified": 0, "upserted": created["_id"], "ok": 1.0}, True)

    async def find_one_and_update(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        projection: Any = None,
        sort: Sequence[tuple[str, int]] | None = None,
        upsert: bool = False,
        return_document: bool = ReturnDocument.BEFORE,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        """Atomically update the first matching document in sort order."""
        with self._lock:
            before = self._first(filter, sort)
            if before is None:
                if not upsert:
                    return None
                after = self._store(_apply_update(_seed_from_filter(filter), update, inserting=True))
                return copy.deepcopy(after) if return_document else None
            after = self._store(_apply_update(before, update, inserting=False))
            return copy.deepcopy(after if return_document else before)

    async def drop(self) -> None:
        """Remove all documents and indexes."""
        with self._lock:
            self._documents.clear()
            self._indexes = {_ID_INDEX: [("_id", 1)]}

    # --- Read Operations ---

    async def find_one(self, filter: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        """Return a copy of the first matching document."""
        with self._lock:
            document = self._first(filter or {}, None)
            return copy.deepcopy(document) if document is not None else None

    async def find(
        self,
        filter: Mapping[str, Any] | None = None,
        sort: Sequence[tuple[str, int]] | None = None,
    ) -> list[dict[str, Any]]:
        """Return copies of all matching documents."""
        with self._lock:
            return [copy.deepcopy(d) for d in self._matching(filter or {}, sort)]

    async def count_documents(self, filter: Mapping[str, Any], **kwargs: Any) -> int:
        """Count matching documents."""
        with self._lock:
            return sum(1 for d in self._documents.values() if matches(d, filter))

    # --- Index Operations ---

    async def list_indexes(self, **kwargs: Any) -> AsyncIterator[dict[str, Any]]:
        """Yield index descriptions in creation order."""
        with self._lock:
            snapshot = [(name, list(key)) for name, key in self._indexes.items()]
        for name, key in snapshot:
            yield {"v": 2, "key": dict(key), "name": name}

    async def create_index(self, keys: Any, name: str | None = None, **kwargs: Any) -> str:
        """Create an index, enforcing MongoDB's naming conflicts.

        Raises:
            OperationFailure: If the namespace is too long, the name is taken
                by a different key pattern, or the key pattern already exists
                under a different name.
        """
        key = _normalize_keys(keys)
        name = name or "_".join(f"{field}_{direction}" for field, direction in key)

        namespace = f"{self.full_name}.${name}"
        if len(namespace.encode("utf-8")) > MAX_NAMESPACE_LENGTH:
            raise OperationFailure(
                f'namespace name generated from index name "{namespace}" is too long '
                f"({MAX_NAMESPACE_LENGTH} byte max)",
                code=67,
            )

        with self._lock:
            existing = self._indexes.get(name)
            if existing is not None:
                if existing == key:
                    return name
                raise OperationFailure(
                    f"Index with name: {name} already exists with different options",
                    code=86,
                )
            for other_name, other_key in self._indexes.items():
                if other_key == key:
                    raise OperationFailure(
                        f"Index already exists with a different name: {other_name}",
                        code=85,
                    )
            self._indexes[name] = key
        return name

    # --- Helpers ---

    def _store(self, document: dict[str, Any]) -> dict[str, Any]:
        self._documents[document["_id"]] = document
        return document

    def _matching(
        self,
        filter: Mapping[str, Any],
        sort: Sequence[tuple[str, int]] | None,
    ) -> list[dict[str, Any]]:
        found = [d for d in self._documents.values() if matches(d, filter)]
        # Stable sorts applied last key first give a compound ordering.
        for field, direction in reversed(list(sort or [])):
            found.sort(key=lambda d, f=field: _sort_key(_values(d, f.split("."))), reverse=direction < 0)
        return found

    def _first(
        self,
        filter: Mapping[str, Any],
        sort: Sequence[tuple[str, int]] | None,
    ) -> dict[str, Any] | None:
        found = self._matching(filter, sort)
        return found[0] if found else None


# =============================================================================
# Query Matching
# =============================================================================


def matches(document: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    """Check if document satisfies a MongoDB-style query.

    Example:
        >>> from docqueue.storage.memory import matches
        >>> matches({"a": {"b": [1, 2]}}, {"a.b": 2})
        True
        >>> matches({"a": 1}, {"$or": [{"a": 2}, {"a": {"$gt": 0}}]})
        True
    """
    for key, condition in query.items():
        if key == "$and":
            if not all(matches(document, q) for q in condition):
                return False
        elif key == "$or":
            if not any(matches(document, q) for q in condition):
                return False
        elif key.startswith("$"):
            raise ValueError(f"Unsupported top-level query operator: {key}")
        elif not _match_condition(_values(document, key.split(".")), condition):
            return False
    return True


def _values(value: Any, parts: list[str]) -> list[Any]:
    """Resolve a dotted path, fanning out through arrays."""
    if not parts:
        return [value]
    head, rest = parts[0], parts[1:]
    if isinstance(value, Mapping):
        if head in value:
            return _values(value[head], rest)
        return []
    if isinstance(value, list):
        if head.isdigit():
            index = int(head)
            return _values(value[index], rest) if index < len(value) else []
        found: list[Any] = []
        for item in value:
            if isinstance(item, Mapping):
                found.extend(_values(item, parts))
        return found
    return []


def _is_operator_document(condition: Any) -> bool:
    return (
        isinstance(condition, Mapping)
        and bool(condition)
        and all(isinstance(k, str) and k.startswith("$") for k in condition)
    )


def _match_condition(candidates: list[Any], condition: Any) -> bool:
    if _is_operator_document(condition):
        return all(_apply_operator(op, candidates, arg) for op, arg in condition.items())
    return _apply_operator("$eq", candidates, condition)


def _expand(candidates: list[Any]) -> list[Any]:
    expanded: list[Any] = []
    for value in candidates:
        expanded.append(value)
        if isinstance(value, list):
            expanded.extend(value)
    return expanded


def _apply_operator(operator: str, candidates: list[Any], argument: Any) -> bool:
    if operator == "$eq":
        if argument is None and not candidates:
            return True
        return any(_equal(value, argument) for value in _expand(candidates))
    if operator == "$ne":
        return not _apply_operator("$eq", candidates, argument)
    if operator in ("$gt", "$gte", "$lt", "$lte"):
        return any(_compare(operator, value, argument) for value in _expand(candidates))
    if operator == "$in":
        return any(_apply_operator("$eq", candidates, item) for item in argument)
    if operator == "$nin":
        return not _apply_operator("$in", candidates, argument)
    if operator == "$exists":
        return bool(candidates) == bool(argument)
    raise ValueError(f"Unsupported query operator: {operator}")


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, datetime):
        return "date"
    if isinstance(value, ObjectId):
        return "objectid"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, list):
        return "array"
    return type(value).__name__


def _equal(left: Any, right: Any) -> bool:
    if _kind(left) != _kind(right):
        return False
    return left == right


def _compare(operator: str, left: Any, right: Any) -> bool:
    kind = _kind(left)
    if kind != _kind(right) or kind not in ("number", "string", "date", "objectid"):
        return False
    if operator == "$gt":
        return left > right
    if operator == "$gte":
        return left >= right
    if operator == "$lt":
        return left < right
    return left <= right


def _sort_key(candidates: list[Any]) -> tuple[int, Any]:
    value = candidates[0] if candidates else None
    kind = _kind(value)
    rank = _TYPE_ORDER.get(kind, 10)
    if kind in ("number", "string", "date", "objectid", "bool"):
        return (rank, value)
    if kind == "null":
        return (rank, 0)
    return (rank, repr(value))


# =============================================================================
# Updates
# =============================================================================


def _normalize_keys(keys: Any) -> list[tuple[str, int]]:
    if isinstance(keys, str):
        return [(keys, 1)]
    if isinstance(keys, Mapping):
        return [(str(k), v) for k, v in keys.items()]
    return [(str(k), v) for k, v in keys]


def _seed_from_filter(filter: Mapping[str, Any]) -> dict[str, Any]:
    """Start an upserted document from the filter's equality conditions."""
    document: dict[str, Any] = {}
    for key, condition in filter.items():
        if key.startswith("$") or _is_operator_document(condition):
            continue
        _set_path(document, key, copy.deepcopy(condition))
    document.setdefault("_id", ObjectId())
    return document


def _apply_update(
    document: Mapping[str, Any],
    update: Mapping[str, Any],
    *,
    inserting: bool,
) -> dict[str, Any]:
    """Return an updated copy of document."""
    if not any(k.startswith("$") for k in update):
        replacement = copy.deepcopy(dict(update))
        replacement["_id"] = document["_id"]
        return replacement

    updated = copy.deepcopy(dict(document))
    for operator, fields in update.items():
        if operator == "$set":
            for path, value in fields.items():
                _set_path(updated, path, copy.deepcopy(value))
        elif operator == "$setOnInsert":
            if inserting:
                for path, value in fields.items():
                    _set_path(updated, path, copy.deepcopy(value))
        elif operator == "$unset":
            for path in fields:
                _unset_path(updated, path)
        else:
            raise ValueError(f"Unsupported update operator: {operator}")
    return updated


def _set_path(document: dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    target = document
    for part in parents:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[leaf] = value


def _unset_path(document: dict[str, Any], path: str) -> None:
    *parents, leaf = path.split(".")
    target: Any = document
    for part in parents:
        target = target.get(part) if isinstance(target, dict) else None
        if target is None:
            return
    if isinstance(target, dict):
        target.pop(leaf, None)
