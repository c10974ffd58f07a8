"""
Thinking Monitor - Snapshot/Change Publisher
=============================================

Fans accepted mutations out to any number of subscribers.

Every subscriber owns a bounded queue. ``publish`` only appends to those
queues, so a slow subscriber can never block ingestion. A subscriber whose
queue overflows is marked stale, its backlog is dropped, and it is
detached; it resynchronises by subscribing again for a fresh snapshot.
"""

import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional
from uuid import uuid4

import structlog

from thinking_monitor.core.config import settings
from thinking_monitor.core.monitor.records import Change, ChangeKind, utc_now_iso

logger = structlog.get_logger()


class Subscription:
    """
    Handle returned by ``ChangePublisher.subscribe``.

    The first item is always the snapshot; afterwards items arrive in
    application order with consecutive ``seq`` numbers.
    """

    def __init__(
        self,
        max_queue_size: int,
        on_ready: Optional[Callable[[], None]] = None,
    ):
        self.id = str(uuid4())
        self.created_at = utc_now_iso()
        self.max_queue_size = max_queue_size
        self.stale = False
        self.closed = False
        self.dropped = 0
        self._queue: Deque[Change] = deque()
        self._lock = threading.Lock()
        self._on_ready = on_ready

    def offer(self, change: Change) -> bool:
        """Enqueue without blocking. Returns False once the subscriber is stale."""
        with self._lock:
            if self.stale or self.closed:
                return False
            if len(self._queue) >= self.max_queue_size:
                self.stale = True
                self.dropped = len(self._queue) + 1
                self._queue.clear()
            else:
                self._queue.append(change)

        self._notify()
        return not self.stale

    def get_nowait(self) -> Optional[Change]:
        with self._lock:
            return self._queue.popleft() if self._queue else None

    def drain(self, max_items: Optional[int] = None) -> List[Change]:
        with self._lock:
            count = len(self._queue) if max_items is None else min(max_items, len(self._queue))
            return [self._queue.popleft() for _ in range(count)]

    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def close(self) -> None:
        with self._lock:
            self.closed = True
            self._queue.clear()
        self._notify()

    def _notify(self) -> None:
        if self._on_ready is not None:
            try:
                self._on_ready()
            except RuntimeError as exc:
                # Event loop already closed on the consumer side
                logger.debug("subscriber_wakeup_failed", subscription_id=self.id, error=str(exc))


class ChangePublisher:
    """Numbers changes in application order and offers them to subscribers."""

    def __init__(self, max_queue_size: Optional[int] = None):
        self.max_queue_size = max_queue_size or settings.SUBSCRIBER_QUEUE_SIZE
        self._subscribers: Dict[str, Subscription] = {}
        self._seq = 0
        self._lock = threading.Lock()

    @property
    def last_seq(self) -> int:
        return self._seq

    def subscribe(
        self,
        snapshot: Callable[[], Dict[str, Any]],
        on_ready: Optional[Callable[[], None]] = None,
    ) -> Subscription:
        """
        Register a subscriber whose first item is a full snapshot.

        The caller must hold the engine's apply lock so no change can be
        applied between reading the snapshot and registering the queue.
        """
        subscription = Subscription(self.max_queue_size, on_ready=on_ready)
        with self._lock:
            subscription.offer(Change(
                kind=ChangeKind.SNAPSHOT,
                key="*",
                payload=snapshot(),
                seq=self._seq,
            ))
            self._subscribers[subscription.id] = subscription

        logger.info("subscriber_added", subscription_id=subscription.id, total=len(self._subscribers))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        with self._lock:
            self._subscribers.pop(subscription.id, None)
        logger.info("subscriber_removed", subscription_id=subscription.id, total=len(self._subscribers))

    def publish(self, change: Change) -> Change:
        """Assign the next sequence number and offer the change to everyone."""
        with self._lock:
            self._seq += 1
            change.seq = self._seq
            stale: List[Subscription] = []
            for subscription in self._subscribers.values():
                if not subscription.offer(change):
                    stale.append(subscription)
            for subscription in stale:
                self._subscribers.pop(subscription.id, None)

        for subscription in stale:
            logger.warning(
                "subscriber_marked_stale",
                subscription_id=subscription.id,
                dropped=subscription.dropped,
            )
        return change

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
