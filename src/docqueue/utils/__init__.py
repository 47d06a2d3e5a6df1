"""docqueue utilities.

Timestamp helpers shared by the message model and the queue.
"""

from docqueue.utils.timestamps import (
    MAX_TIMESTAMP,
    MIN_TIMESTAMP,
    add_duration,
    clamp,
    from_seconds,
    to_timestamp,
    truncate_millis,
    utcnow,
    validate_duration,
)

__all__ = [
    "MAX_TIMESTAMP",
    "MIN_TIMESTAMP",
    "add_duration",
    "clamp",
    "from_seconds",
    "to_timestamp",
    "truncate_millis",
    "utcnow",
    "validate_duration",
]
