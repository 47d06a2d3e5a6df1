"""Custom exceptions.

docqueue uses a small hierarchy of exceptions so callers can tell bad input
apart from an exhausted index build. Errors raised by the document store
itself (``pymongo.errors.PyMongoError``) are never wrapped.

Example:
    >>> from docqueue.core.exceptions import DocQueueError, ValidationError
    >>> isinstance(ValidationError("bad key"), DocQueueError)
    True
    >>> isinstance(ValidationError("bad key"), ValueError)
    True
"""

from __future__ import annotations


class DocQueueError(Exception):
    """Base exception for docqueue.

    Example:
        >>> from docqueue.core.exceptions import DocQueueError
        >>> e = DocQueueError("something went wrong")
        >>> str(e)
        'something went wrong'
    """


class ValidationError(DocQueueError, ValueError):
    """Caller input was rejected before any store interaction.

    Raised for non-string query or index keys, index directions other than
    ``1``/``-1``, NaN priorities and malformed timestamps or durations.

    Example:
        >>> from docqueue.core.exceptions import ValidationError
        >>> raise ValidationError("priority was NaN")  # doctest: +IGNORE_EXCEPTION_DETAIL
        Traceback (most recent call last):
        ValidationError: priority was NaN
    """


class IndexCreationError(DocQueueError):
    """An index could not be created within the bounded number of attempts.

    Example:
        >>> from docqueue.core.exceptions import IndexCreationError
        >>> raise IndexCreationError("couldnt create index after 5 attempts")  # doctest: +IGNORE_EXCEPTION_DETAIL
        Traceback (most recent call last):
        IndexCreationError: couldnt create index after 5 attempts
    """


class ConfigurationError(DocQueueError):
    """Configuration is invalid.

    Example:
        >>> from docqueue.core.exceptions import ConfigurationError
        >>> raise ConfigurationError("unsupported url")  # doctest: +IGNORE_EXCEPTION_DETAIL
        Traceback (most recent call last):
        ConfigurationError: unsupported url
    """
