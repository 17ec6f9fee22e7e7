"""
Live event fan-out.

A process-scoped registry of subscriber channels. The single producer (the
storage engine, right after a commit) pushes each committed event to every
subscriber's own bounded queue without ever blocking; a subscriber whose
queue is full is disconnected and must resume with a delta request.

Usage:
    subscription = sync.subscribe()
    try:
        while True:
            event = subscription.get(timeout=15)
            if event is None:
                continue  # heartbeat opportunity
            handle(event)
    finally:
        subscription.close()
"""

import itertools
import logging
import queue
import threading
from collections import deque
from typing import Any, Iterable, Optional

from chatledger.exceptions import SubscriberDisconnected

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


class Subscription:
    """One subscriber's ordered delivery channel."""

    def __init__(
        self,
        registry: "SubscriberRegistry",
        last_version: int,
        maxsize: int,
        backlog: Iterable[dict[str, Any]] = (),
    ):
        self.id = next(_ids)
        self._registry = registry
        self._queue: queue.Queue[dict[str, Any]] = queue.Queue(maxsize=maxsize)
        self._backlog: deque[dict[str, Any]] = deque(backlog)
        self._last_enqueued = last_version
        self.last_delivered = (
            self._backlog[0]["version"] - 1 if self._backlog else last_version
        )
        self.closed = False
        self.reason: Optional[str] = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _offer(self, event: dict[str, Any]) -> bool:
        """Enqueue one event; returns False if the subscriber was dropped."""
        if self.closed:
            return False
        version = event["version"]
        if version <= self._last_enqueued:
            return True  # already queued
        if version != self._last_enqueued + 1:
            self._disconnect(f"gap before version {version}")
            return False
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self._disconnect("queue full")
            return False
        self._last_enqueued = version
        return True

    def _disconnect(self, reason: str) -> None:
        self.closed = True
        self.reason = reason
        logger.warning(f"Dropping subscriber {self.id}: {reason}")

    def get(self, timeout: Optional[float] = None) -> Optional[dict[str, Any]]:
        """
        Next event in version order.

        Returns:
            The event, or None if nothing arrived within `timeout`

        Raises:
            SubscriberDisconnected: The channel was closed and is drained
        """
        if self._backlog:
            event = self._backlog.popleft()
        else:
            try:
                if self.closed:
                    event = self._queue.get_nowait()
                else:
                    event = self._queue.get(timeout=timeout)
            except queue.Empty:
                if self.closed:
                    raise SubscriberDisconnected(
                        self.reason or "closed", self.last_delivered
                    ) from None
                return None
        self.last_delivered = event["version"]
        return event

    def pending(self) -> int:
        return len(self._backlog) + self._queue.qsize()

    def close(self) -> None:
        """Deregister and release the queue."""
        if not self.closed:
            self.closed = True
            self.reason = "closed by subscriber"
        self._registry.unregister(self)


class SubscriberRegistry:
    """Thread-safe set of live subscriptions."""

    def __init__(self, queue_size: int = 1000):
        self.queue_size = queue_size
        self._subscribers: dict[int, Subscription] = {}
        self._lock = threading.Lock()

    def register(
        self, last_version: int, backlog: Iterable[dict[str, Any]] = ()
    ) -> Subscription:
        subscription = Subscription(self, last_version, self.queue_size, backlog)
        with self._lock:
            self._subscribers[subscription.id] = subscription
        logger.debug(
            f"Registered subscriber {subscription.id} at version {last_version}"
        )
        return subscription

    def unregister(self, subscription: Subscription) -> None:
        with self._lock:
            removed = self._subscribers.pop(subscription.id, None)
        if removed is not None:
            logger.debug(f"Unregistered subscriber {subscription.id}")

    def publish(self, events: list[dict[str, Any]]) -> None:
        """Offer committed events, in version order, to every subscriber."""
        if not events:
            return
        with self._lock:
            subscribers = list(self._subscribers.values())
        for subscription in subscribers:
            for event in events:
                if not subscription._offer(event):
                    self.unregister(subscription)
                    break

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def close_all(self) -> None:
        """Disconnect every subscriber (process shutdown)."""
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()
        for subscription in subscribers:
            subscription._disconnect("server shutdown")
