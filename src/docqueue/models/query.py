"""Payload query building.

Callers filter messages by payload fields only. Their top-level keys are moved
into the ``payload.`` namespace of the stored document; operators nested inside
a field's value pass through untouched for the store's query language. Top
level operators such as ``$and`` are not supported, which keeps the rewrite
unambiguous: ``{"$and": [...]}`` would become a filter on a payload field
literally named ``$and``.

Example:
    >>> from docqueue.models.query import Query, build_payload_query
    >>> build_payload_query({}, {"type": "email", "tries": {"$lt": 3}})
    {'payload.type': 'email', 'payload.tries': {'$lt': 3}}
    >>> Query().where("type", "email").where_lt("tries", 3).build()
    {'type': 'email', 'tries': {'$lt': 3}}
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from docqueue.core.exceptions import ValidationError
from docqueue.models.base import payload_field

ASCENDING = 1
DESCENDING = -1


class Query:
    """Fluent builder for payload queries.

    Produces the same plain mapping a caller could write by hand, so anything
    accepting a payload query accepts either form.

    Example:
        >>> from docqueue.models.query import Query
        >>> q = Query().where("kind", "report").where_in("region", ["eu", "us"])
        >>> q.build()["region"]
        {'$in': ['eu', 'us']}
    """

    __slots__ = ("_filters",)

    def __init__(self) -> None:
        """Initialize an empty query."""
        self._filters: dict[str, Any] = {}

    def where(self, field: str, value: Any) -> Query:
        """Match payload field equal to value.

        Example:
            >>> from docqueue.models.query import Query
            >>> Query().where("status", "new").build()
            {'status': 'new'}
        """
        self._filters[field] = value
        return self

    def _where_op(self, field: str, operator: str, value: Any) -> Query:
        current = self._filters.get(field)
        if isinstance(current, dict) and all(k.startswith("$") for k in current):
            current[operator] = value
        else:
            self._filters[field] = {operator: value}
        return self

    def where_in(self, field: str, values: list[Any]) -> Query:
        """Match payload field equal to any of values."""
        return self._where_op(field, "$in", list(values))

    def where_not_in(self, field: str, values: list[Any]) -> Query:
        """Match payload field equal to none of values."""
        return self._where_op(field, "$nin", list(values))

    def where_ne(self, field: str, value: Any) -> Query:
        """Match payload field not equal to value."""
        return self._where_op(field, "$ne", value)

    def where_gt(self, field: str, value: Any) -> Query:
        """Match payload field greater than value.

        Example:
            >>> from docqueue.models.query import Query
            >>> Query().where_gt("size", 10).where_lte("size", 20).build()
            {'size': {'$gt': 10, '$lte': 20}}
        """
        return self._where_op(field, "$gt", value)

    def where_gte(self, field: str, value: Any) -> Query:
        """Match payload field greater than or equal to value."""
        return self._where_op(field, "$gte", value)

    def where_lt(self, field: str, value: Any) -> Query:
        """Match payload field less than value."""
        return self._where_op(field, "$lt", value)

    def where_lte(self, field: str, value: Any) -> Query:
        """Match payload field less than or equal to value."""
        return self._where_op(field, "$lte", value)

    def where_exists(self, field: str, exists: bool = True) -> Query:
        """Match on presence of a payload field."""
        return self._where_op(field, "$exists", exists)

    def build(self) -> dict[str, Any]:
        """Return the query as a plain mapping."""
        return {
            key: dict(value) if isinstance(value, dict) else value
            for key, value in self._filters.items()
        }


PayloadQuery = Mapping[str, Any] | Query | None


def build_payload_query(
    initial: Mapping[str, Any],
    payload_query: PayloadQuery,
) -> dict[str, Any]:
    """Merge a payload query into a document query.

    Args:
        initial: Conditions on queue fields (e.g. ``earliestGet``).
        payload_query: Caller conditions on payload fields.

    Returns:
        A new query over stored documents.

    Raises:
        ValidationError: If a payload query key is not a string.
    """
    complete = dict(initial)
    if payload_query is None:
        return complete
    if isinstance(payload_query, Query):
        payload_query = payload_query.build()
    if not isinstance(payload_query, Mapping):
        raise ValidationError("query was not a mapping")

    for key, value in payload_query.items():
        if not isinstance(key, str):
            raise ValidationError("key in query was not a string")
        complete[payload_field(key)] = value

    return complete


def build_index_fields(
    fields: Mapping[str, int] | None,
    label: str,
    complete: dict[str, int],
) -> None:
    """Validate index fields and append them, payload-namespaced, to complete.

    Args:
        fields: Payload field name to direction (``1`` or ``-1``).
        label: Argument name used in error messages.
        complete: Index key pattern being built; modified in place.

    Raises:
        ValidationError: If a key is not a string or a direction is not 1/-1.

    Example:
        >>> from docqueue.models.query import build_index_fields
        >>> index = {"earliestGet": 1}
        >>> build_index_fields({"type": -1}, "before_sort", index)
        >>> index
        {'earliestGet': 1, 'payload.type': -1}
    """
    if not fields:
        return
    for key, direction in fields.items():
        if not isinstance(key, str):
            raise ValidationError(f"key in {label} was not a string")
        if isinstance(direction, bool) or direction not in (ASCENDING, DESCENDING):
            raise ValidationError(f"value of {label} is not 1 or -1 for ascending and descending")
        complete[payload_field(key)] = int(direction)
