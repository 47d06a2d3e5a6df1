"""Unordered queue.

Claims whichever visible message the store finds first. Cheaper than the
ordered queue when ordering does not matter, since the claim needs no sort.
"""

from __future__ import annotations

from docqueue.queue.base import AbstractQueue


class UnorderedQueue(AbstractQueue):
    """Collection-backed queue without claim ordering.

    Example:
        >>> from docqueue.queue.unordered import UnorderedQueue
        >>> UnorderedQueue.claim_sort is None
        True
    """

    claim_sort = None
