"""
Thinking Monitor - Publisher Tests
===================================

Snapshot first, ordered changes, bounded queues and stale subscribers.
"""

from thinking_monitor.core.monitor.publisher import ChangePublisher
from thinking_monitor.core.monitor.records import Change, ChangeKind


def _change(key: str) -> Change:
    return Change(kind=ChangeKind.MESSAGE_ADDED, key=key, payload={"key": key})


class TestChangePublisher:
    """Fan-out of changes to subscribers."""

    def test_snapshot_first(self):
        """The first item a subscriber sees is the snapshot."""
        publisher = ChangePublisher(max_queue_size=10)
        subscription = publisher.subscribe(lambda: {"sessions": []})

        first = subscription.get_nowait()

        assert first.kind == ChangeKind.SNAPSHOT
        assert first.payload == {"sessions": []}
        assert first.seq == 0

    def test_changes_in_order_without_gaps(self):
        """Changes arrive in publish order with consecutive seq numbers."""
        publisher = ChangePublisher(max_queue_size=10)
        publisher.publish(_change("before"))
        subscription = publisher.subscribe(lambda: {})

        for key in ("a", "b", "c"):
            publisher.publish(_change(key))

        items = subscription.drain()
        assert items[0].kind == ChangeKind.SNAPSHOT
        assert items[0].seq == 1
        assert [c.key for c in items[1:]] == ["a", "b", "c"]
        assert [c.seq for c in items[1:]] == [2, 3, 4]

    def test_every_subscriber_gets_every_change(self):
        """Two subscribers see the same sequence."""
        publisher = ChangePublisher(max_queue_size=10)
        first = publisher.subscribe(lambda: {})
        second = publisher.subscribe(lambda: {})

        publisher.publish(_change("a"))

        assert [c.key for c in first.drain()[1:]] == ["a"]
        assert [c.key for c in second.drain()[1:]] == ["a"]

    def test_slow_subscriber_marked_stale(self):
        """Overflow drops the backlog and detaches only that subscriber."""
        publisher = ChangePublisher(max_queue_size=3)
        slow = publisher.subscribe(lambda: {})
        fast = publisher.subscribe(lambda: {})

        for i in range(5):
            publisher.publish(_change(str(i)))
            fast.drain()

        assert slow.stale is True
        assert slow.pending() == 0
        assert slow.dropped > 0
        assert fast.stale is False
        assert publisher.subscriber_count == 1

    def test_publish_never_blocks_on_stale(self):
        """Publishing keeps working after a subscriber went stale."""
        publisher = ChangePublisher(max_queue_size=1)
        publisher.subscribe(lambda: {})

        for i in range(100):
            publisher.publish(_change(str(i)))

        assert publisher.last_seq == 100
        assert publisher.subscriber_count == 0

    def test_resubscribe_after_stale(self):
        """A stale subscriber resynchronises with a fresh snapshot."""
        publisher = ChangePublisher(max_queue_size=2)
        state = {"count": 0}

        def snapshot():
            return {"count": state["count"]}

        stale = publisher.subscribe(snapshot)
        for i in range(3):
            state["count"] += 1
            publisher.publish(_change(str(i)))
        assert stale.stale is True

        fresh = publisher.subscribe(snapshot)
        first = fresh.get_nowait()

        assert first.payload == {"count": 3}
        assert first.seq == publisher.last_seq

    def test_unsubscribe(self):
        """Unsubscribed handles receive nothing more."""
        publisher = ChangePublisher(max_queue_size=10)
        subscription = publisher.subscribe(lambda: {})
        publisher.unsubscribe(subscription)

        publisher.publish(_change("a"))

        assert subscription.closed is True
        assert subscription.drain() == []
        assert publisher.subscriber_count == 0

    def test_wakeup_callback(self):
        """on_ready fires for the snapshot and each change."""
        calls = []
        publisher = ChangePublisher(max_queue_size=10)
        publisher.subscribe(lambda: {}, on_ready=lambda: calls.append(1))

        publisher.publish(_change("a"))

        assert len(calls) == 2
