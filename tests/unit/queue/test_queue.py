"""Tests for the priority ordered Queue.

Tests cover:
- Priority and age ordering
- Delayed delivery
- Visibility timeout
- Ack, ack-and-send and requeue
- Counting
- Validation
- Concurrent consumers
- Protocol compliance
"""

import asyncio
import time
from datetime import UTC, datetime

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from docqueue.core.exceptions import ValidationError
from docqueue.models.message import Message
from docqueue.models.query import Query
from docqueue.protocols.queue import MessageQueue
from docqueue.queue.ordered import Queue
from docqueue.storage.memory import MemoryCollection
from docqueue.utils.timestamps import MAX_TIMESTAMP, MIN_TIMESTAMP, add_duration, utcnow


@pytest.fixture
def collection():
    return MemoryCollection()


@pytest.fixture
def queue(collection):
    return Queue(collection)


async def get_all(queue, query=None, **kwargs):
    kwargs.setdefault("wait_duration", 0)
    kwargs.setdefault("limit", 100)
    return await queue.get(query, **kwargs)


# =============================================================================
# Ordering Tests
# =============================================================================


class TestQueueOrdering:
    """Tests for delivery order."""

    async def test_lowest_priority_first(self, queue):
        """Lower priority values are served first."""
        await queue.send({"key": 0}, priority=0.5)
        await queue.send({"key": 1}, priority=0.4)
        await queue.send({"key": 2}, priority=0.3)

        messages = await get_all(queue)

        assert [m.payload["key"] for m in messages] == [2, 1, 0]
        assert [m.priority for m in messages] == [0.3, 0.4, 0.5]

    async def test_equal_priority_oldest_first(self, queue):
        """Ties are served in send order."""
        for i in range(5):
            await queue.send({"n": i})

        messages = await get_all(queue)

        assert [m.payload["n"] for m in messages] == [0, 1, 2, 3, 4]

    async def test_one_at_a_time_order(self, queue):
        """Successive single gets follow the same order."""
        await queue.send({"key": "late"}, priority=2)
        await queue.send({"key": "early"}, priority=1)

        first = await queue.get(wait_duration=0)
        second = await queue.get(wait_duration=0)

        assert first[0].payload == {"key": "early"}
        assert second[0].payload == {"key": "late"}

    async def test_negative_and_infinite_priorities(self, queue):
        """Any non-NaN number is a valid priority."""
        await queue.send({"p": "inf"}, priority=float("inf"))
        await queue.send({"p": "neg"}, priority=-10)
        await queue.send({"p": "-inf"}, priority=float("-inf"))

        messages = await get_all(queue)

        assert [m.payload["p"] for m in messages] == ["-inf", "neg", "inf"]


# =============================================================================
# Get Tests
# =============================================================================


class TestQueueGet:
    """Tests for claiming messages."""

    async def test_get_empty(self, queue):
        """An empty queue returns no messages."""
        assert await queue.get(wait_duration=0) == []

    async def test_query_filters_payload(self, queue):
        """Only messages whose payload matches are claimed."""
        await queue.send({"type": "a", "n": 1})
        await queue.send({"type": "b", "n": 2})
        await queue.send({"type": "b", "n": 3})

        messages = await get_all(queue, {"type": "b", "n": {"$gt": 2}})

        assert [m.payload for m in messages] == [{"type": "b", "n": 3}]
        assert await queue.count() == 3

    async def test_query_builder_accepted(self, queue):
        """A Query builder works as a payload query."""
        await queue.send({"type": "a"})
        await queue.send({"type": "b"})

        messages = await get_all(queue, Query().where_in("type", ["b", "c"]))

        assert [m.payload["type"] for m in messages] == ["b"]

    async def test_nested_payload_query(self, queue):
        """Dotted keys reach into nested payload fields."""
        await queue.send({"job": {"kind": "email"}})
        await queue.send({"job": {"kind": "sms"}})

        messages = await get_all(queue, {"job.kind": "sms"})

        assert messages[0].payload == {"job": {"kind": "sms"}}

    async def test_limit_batches(self, queue):
        """limit caps each batch."""
        for i in range(5):
            await queue.send({"n": i})

        first = await queue.get(wait_duration=0, limit=3)
        second = await queue.get(wait_duration=0, limit=3)

        assert [m.payload["n"] for m in first] == [0, 1, 2]
        assert [m.payload["n"] for m in second] == [3, 4]

    async def test_claimed_messages_hidden(self, queue):
        """A claimed message is not claimable again before its timeout."""
        await queue.send({"a": 1})

        assert len(await queue.get(wait_duration=0)) == 1
        assert await queue.get(wait_duration=0) == []

    async def test_claim_moves_earliest_get(self, queue):
        """The returned message carries the new visibility time."""
        await queue.send({"a": 1})
        before = utcnow()

        [message] = await queue.get(running_reset_duration=60, wait_duration=0)

        assert (message.earliest_get - before).total_seconds() == pytest.approx(60, abs=1)

    async def test_huge_visibility_timeout_saturates(self, queue):
        """An enormous timeout saturates instead of overflowing."""
        await queue.send({"a": 1})

        [message] = await queue.get(running_reset_duration=float("inf"), wait_duration=0)

        assert message.earliest_get == MAX_TIMESTAMP

    async def test_visibility_timeout_expires(self, queue):
        """An unacked message reappears after its timeout."""
        await queue.send({"a": 1})
        [claimed] = await queue.get(running_reset_duration=0.1, wait_duration=0)

        await asyncio.sleep(0.2)
        [again] = await queue.get(wait_duration=0)

        assert again.id == claimed.id

    async def test_zero_timeout_no_double_claim(self, queue):
        """With a zero timeout one call still returns each message once."""
        await queue.send({"a": 1})
        await queue.send({"a": 2})

        messages = await queue.get(running_reset_duration=0, wait_duration=0, limit=10)

        assert len(messages) == 2
        assert len({m.id for m in messages}) == 2
        assert len(await queue.get(running_reset_duration=0, wait_duration=0, limit=10)) == 2

    async def test_negative_timeout_leaves_visible(self, queue):
        """A negative timeout leaves the claimed message visible."""
        await queue.send({"a": 1})

        await queue.get(running_reset_duration=-5, wait_duration=0)

        assert await queue.count(running=False) == 1

    async def test_waits_for_deadline(self, queue):
        """An empty get keeps polling until wait_duration passes."""
        start = time.monotonic()

        messages = await queue.get(wait_duration=0.3, poll_interval=0.05)

        assert messages == []
        assert time.monotonic() - start >= 0.25

    async def test_negative_poll_interval(self, queue):
        """A negative poll interval is treated as zero."""
        assert await queue.get(wait_duration=0.05, poll_interval=-1) == []

    async def test_receives_message_sent_while_waiting(self, queue):
        """A message sent during the wait is returned promptly."""

        async def send_later():
            await asyncio.sleep(0.1)
            await queue.send({"late": True})

        start = time.monotonic()
        messages, _ = await asyncio.gather(
            queue.get(wait_duration=5, poll_interval=0.02),
            send_later(),
        )

        assert [m.payload for m in messages] == [{"late": True}]
        assert time.monotonic() - start < 4

    async def test_partial_batch_returns_without_waiting(self, queue):
        """Once something is claimed, get() does not wait to fill the batch."""
        await queue.send({"a": 1})
        start = time.monotonic()

        messages = await queue.get(wait_duration=5, limit=10)

        assert len(messages) == 1
        assert time.monotonic() - start < 4

    async def test_concurrent_gets_are_exclusive(self, queue):
        """Concurrent consumers never receive the same message."""
        for i in range(20):
            await queue.send({"n": i})

        batches = await asyncio.gather(*(queue.get(wait_duration=0, limit=3) for _ in range(10)))
        ids = [m.id for batch in batches for m in batch]

        assert len(ids) == 20
        assert len(set(ids)) == 20

    async def test_instance_defaults(self, collection):
        """get() falls back to the defaults the queue was built with."""
        queue = Queue(collection, running_reset_duration=5, wait_duration=0, limit=2)
        for i in range(3):
            await queue.send({"n": i})
        before = utcnow()

        messages = await queue.get()

        assert [m.payload["n"] for m in messages] == [0, 1]
        assert (messages[0].earliest_get - before).total_seconds() == pytest.approx(5, abs=1)

    async def test_bad_document_ends_batch(self, queue, collection):
        """A malformed document after a good one returns the partial batch."""
        await queue.send({"n": 0}, priority=0)
        await collection.insert_one(
            {"_id": "broken", "payload": "oops", "earliestGet": MIN_TIMESTAMP, "priority": 1, "created": utcnow()}
        )
        await queue.send({"n": 2}, priority=2)

        messages = await queue.get(wait_duration=0, limit=10)

        assert [m.payload["n"] for m in messages] == [0]
        # The later good message is still visible for the next call.
        assert await queue.count(running=False) == 1

    async def test_bad_first_document_raises(self, queue, collection):
        """A malformed document with nothing else claimed raises."""
        await collection.insert_one(
            {"_id": "broken", "payload": {}, "earliestGet": MIN_TIMESTAMP, "priority": float("nan"), "created": utcnow()}
        )

        with pytest.raises(ValidationError, match="NaN"):
            await queue.get(wait_duration=0)

    @pytest.mark.parametrize("limit", [0, -1, True, 1.5])
    async def test_bad_limit(self, queue, limit):
        """limit must be a positive integer."""
        with pytest.raises(ValidationError, match="limit"):
            await queue.get(limit=limit)

    async def test_nan_durations_rejected(self, queue):
        """NaN durations are rejected before touching the store."""
        with pytest.raises(ValidationError):
            await queue.get(running_reset_duration=float("nan"))
        with pytest.raises(ValidationError):
            await queue.get(wait_duration=float("nan"))
        with pytest.raises(ValidationError):
            await queue.get(poll_interval=float("nan"))

    async def test_non_string_query_key(self, queue):
        """Query keys must be strings."""
        with pytest.raises(ValidationError):
            await queue.get({1: "a"}, wait_duration=0)


# =============================================================================
# Delay Tests
# =============================================================================


class TestQueueDelay:
    """Tests for delayed delivery."""

    async def test_future_message_hidden(self, queue):
        """A message is invisible before its earliest get."""
        await queue.send({"a": 1}, earliest_get=add_duration(utcnow(), 60))

        assert await queue.get(wait_duration=0) == []
        assert await queue.count(running=True) == 1

    async def test_delay_elapses(self, queue):
        """A delayed message becomes visible on time."""
        await queue.send({"a": 1}, earliest_get=add_duration(utcnow(), 0.1))

        assert await queue.get(wait_duration=0) == []
        messages = await queue.get(wait_duration=2, poll_interval=0.02)

        assert [m.payload for m in messages] == [{"a": 1}]

    async def test_epoch_seconds_accepted(self, queue):
        """earliest_get accepts epoch seconds."""
        message = await queue.send({"a": 1}, earliest_get=time.time() + 3600)

        assert message.earliest_get > utcnow()
        assert await queue.get(wait_duration=0) == []

    async def test_out_of_range_clamped(self, queue):
        """earliest_get saturates at both ends."""
        low = await queue.send({"a": 1}, earliest_get=-100)
        high = await queue.send({"a": 2}, earliest_get=1e30)

        assert low.earliest_get == MIN_TIMESTAMP
        assert high.earliest_get == MAX_TIMESTAMP


# =============================================================================
# Count Tests
# =============================================================================


class TestQueueCount:
    """Tests for counting."""

    async def test_count_running_split(self, queue):
        """running splits messages by visibility."""
        await queue.send({"a": 1})
        await queue.send({"a": 2})
        await queue.send({"a": 3}, earliest_get=add_duration(utcnow(), 60))
        await queue.get(wait_duration=0)

        assert await queue.count() == 3
        assert await queue.count(running=True) == 2
        assert await queue.count(running=False) == 1

    async def test_count_with_query(self, queue):
        """count filters by payload."""
        await queue.send({"type": "a"})
        await queue.send({"type": "b"})
        await queue.send({"type": "b"})

        assert await queue.count({"type": "b"}) == 2
        assert await queue.count({"type": "b"}, running=True) == 0

    async def test_count_bad_query(self, queue):
        """Query keys must be strings."""
        with pytest.raises(ValidationError):
            await queue.count({1: 1})


# =============================================================================
# Ack Tests
# =============================================================================


class TestQueueAck:
    """Tests for ack, ack_send and requeue."""

    async def test_ack_removes(self, queue):
        """Acked messages are gone."""
        await queue.send({"a": 1})
        [message] = await queue.get(wait_duration=0)

        await queue.ack(message)

        assert await queue.count() == 0

    async def test_ack_missing_is_noop(self, queue):
        """Acking twice is not an error."""
        message = await queue.send({"a": 1})

        await queue.ack(message)
        await queue.ack(message)

        assert await queue.count() == 0

    async def test_ack_send_replaces(self, queue, collection):
        """ack_send keeps the id and swaps the content."""
        await queue.send({"step": 1}, priority=0.5)
        [message] = await queue.get(wait_duration=0)

        await queue.ack_send(message, {"step": 2}, priority=0.1)

        [again] = await queue.get(wait_duration=0)
        assert again.id == message.id
        assert again.payload == {"step": 2}
        assert again.priority == 0.1
        assert await queue.count() == 1

    async def test_ack_send_recreates_deleted(self, queue):
        """ack_send upserts when the message was removed meanwhile."""
        message = await queue.send({"a": 1})
        await queue.ack(message)

        await queue.ack_send(message, {"a": 2})

        [again] = await queue.get(wait_duration=0)
        assert again.id == message.id
        assert again.payload == {"a": 2}

    async def test_ack_send_new_timestamp(self, queue, collection):
        """new_timestamp refreshes created; otherwise it is kept."""
        message = await queue.send({"a": 1})
        await collection.update_one(
            {"_id": message.id}, {"$set": {"created": datetime(2000, 1, 1, tzinfo=UTC)}}
        )

        await queue.ack_send(message, {"a": 2}, new_timestamp=False)
        kept = await collection.find_one({"_id": message.id})
        await queue.ack_send(message, {"a": 3}, new_timestamp=True)
        refreshed = await collection.find_one({"_id": message.id})

        assert kept["created"] == datetime(2000, 1, 1, tzinfo=UTC)
        assert refreshed["created"] > datetime(2000, 1, 1, tzinfo=UTC)

    async def test_ack_send_upsert_without_new_timestamp_sets_created(self, queue, collection):
        """A recreated document always gets a created time."""
        message = await queue.send({"a": 1})
        await queue.ack(message)

        await queue.ack_send(message, {"a": 2}, new_timestamp=False)

        assert "created" in await collection.find_one({"_id": message.id})

    async def test_ack_send_keeps_place_in_line(self, queue):
        """Without a new timestamp a replacement keeps its age."""
        first = await queue.send({"n": 1})
        await asyncio.sleep(0.01)
        await queue.send({"n": 2})
        [claimed] = await queue.get({"n": 1}, wait_duration=0)
        assert claimed.id == first.id

        await queue.ack_send(claimed, {"n": 1}, new_timestamp=False)

        messages = await get_all(queue)
        assert [m.payload["n"] for m in messages] == [1, 2]

    async def test_ack_send_nan_priority(self, queue, collection):
        """A NaN priority is rejected and the store is untouched."""
        message = await queue.send({"a": 1})
        before = await collection.find_one({"_id": message.id})

        with pytest.raises(ValidationError):
            await queue.ack_send(message, {"a": 2}, priority=float("nan"))

        assert await collection.find_one({"_id": message.id}) == before

    async def test_ack_send_bad_payload(self, queue):
        """Payloads must be mappings."""
        message = await queue.send({"a": 1})

        with pytest.raises(ValidationError):
            await queue.ack_send(message, ["not", "a", "mapping"])

    async def test_requeue_defaults_to_message_values(self, queue):
        """requeue keeps the message's own payload, priority and visibility."""
        await queue.send({"a": 1}, priority=0.7)
        [message] = await queue.get(wait_duration=0, running_reset_duration=60)

        await queue.requeue(message)

        assert await queue.count(running=True) == 1
        assert await queue.count(running=False) == 0

    async def test_requeue_now(self, queue):
        """requeue with an earliest get of zero makes it visible at once."""
        await queue.send({"a": 1}, priority=0.7)
        [message] = await queue.get(wait_duration=0)

        await queue.requeue(message, earliest_get=0)

        [again] = await queue.get(wait_duration=0)
        assert again.id == message.id
        assert again.payload == {"a": 1}
        assert again.priority == 0.7

    async def test_requeue_new_priority(self, queue):
        """requeue can change the priority."""
        await queue.send({"a": 1}, priority=0.9)
        await queue.send({"a": 2}, priority=0.5)
        [message] = await queue.get({"a": 1}, wait_duration=0)

        await queue.requeue(message, earliest_get=0, priority=0.1)

        messages = await get_all(queue)
        assert [m.payload["a"] for m in messages] == [1, 2]


# =============================================================================
# Send Tests
# =============================================================================


class TestQueueSend:
    """Tests for producing messages."""

    async def test_stored_document_shape(self, queue, collection):
        """Only the queue's fields are persisted."""
        message = await queue.send({"a": {"b": [1, 2]}}, earliest_get=0, priority=1)

        document = await collection.find_one({"_id": message.id})

        assert set(document) == {"_id", "payload", "earliestGet", "priority", "created"}
        assert document["payload"] == {"a": {"b": [1, 2]}}
        assert document["priority"] == 1.0
        assert document["earliestGet"] == MIN_TIMESTAMP

    async def test_payload_round_trip(self, queue):
        """Payloads come back as sent."""
        payload = {"s": "x", "n": 1, "f": 1.5, "l": [1, {"k": None}], "d": {"e": True}}
        await queue.send(payload)

        [message] = await queue.get(wait_duration=0)

        assert message.payload == payload

    async def test_nan_priority_rejected(self, queue):
        """NaN priority is rejected and nothing is stored."""
        with pytest.raises(ValidationError):
            await queue.send({"a": 1}, priority=float("nan"))

        assert await queue.count() == 0

    async def test_non_mapping_payload_rejected(self, queue):
        """Payloads must be mappings."""
        with pytest.raises(ValidationError):
            await queue.send("hello")

    async def test_send_message_keeps_id(self, queue):
        """send_message stores a prepared message under its id."""
        message = Message(id=ObjectId(), payload={"a": 1}, earliest_get=0, priority=0.2)

        await queue.send_message(message)

        [again] = await queue.get(wait_duration=0)
        assert again.id == message.id
        assert again.priority == 0.2

    async def test_send_message_duplicate(self, queue):
        """Sending the same message twice fails."""
        message = Message(payload={"a": 1})
        await queue.send_message(message)

        with pytest.raises(DuplicateKeyError):
            await queue.send_message(message)


class TestQueueProtocol:
    """Protocol compliance."""

    def test_is_message_queue(self, queue):
        """Queue satisfies MessageQueue."""
        assert isinstance(queue, MessageQueue)

    def test_exposes_collection(self, queue, collection):
        """The collection is reachable."""
        assert queue.collection is collection
