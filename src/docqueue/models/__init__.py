"""Queue data models."""

from docqueue.models.base import DocQueueModel, payload_field
from docqueue.models.message import Message, validate_priority
from docqueue.models.query import (
    ASCENDING,
    DESCENDING,
    PayloadQuery,
    Query,
    build_index_fields,
    build_payload_query,
)

__all__ = [
    "ASCENDING",
    "DESCENDING",
    "DocQueueModel",
    "Message",
    "PayloadQuery",
    "Query",
    "build_index_fields",
    "build_payload_query",
    "payload_field",
    "validate_priority",
]
