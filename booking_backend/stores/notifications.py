"""
In-process change notification.

A subscriber registers a loader for a topic; it receives the loader's
result immediately as ``snapshot`` and again every time the topic is
published. Stores publish after each successful write.
"""

import logging
from collections.abc import Callable, Iterator
from queue import Empty, Queue
from threading import Lock
from typing import Any

logger = logging.getLogger(__name__)

APPOINTMENTS_TOPIC = 'appointments'
AVAILABILITIES_TOPIC = 'availabilities'

_CLOSED = object()


class Subscription:
    def __init__(self, feed: 'ChangeFeed', topic: str, loader: Callable[[], Any]) -> None:
        self._feed = feed
        self._queue: Queue = Queue()
        self.topic = topic
        self.loader = loader
        self.snapshot = loader()
        self.active = True

    def push(self, snapshot: Any) -> None:
        self.snapshot = snapshot
        self._queue.put(snapshot)

    def updates(self, timeout: float | None = None) -> Iterator[Any]:
        """Yield each new snapshot until unsubscribed, or until ``timeout`` passes without one."""
        while self.active:
            try:
                item = self._queue.get(timeout=timeout)
            except Empty:
                return
            if item is _CLOSED:
                return
            yield item

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._feed.remove(self)
        self._queue.put(_CLOSED)


class ChangeFeed:
    def __init__(self) -> None:
        self._lock = Lock()
        self._subscriptions: dict[str, list[Subscription]] = {}

    def subscribe(self, topic: str, loader: Callable[[], Any]) -> Subscription:
        subscription = Subscription(self, topic, loader)
        with self._lock:
            self._subscriptions.setdefault(topic, []).append(subscription)
        return subscription

    def remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscriptions.get(subscription.topic, [])
            if subscription in subscribers:
                subscribers.remove(subscription)

    def publish(self, topic: str) -> None:
        with self._lock:
            subscribers = list(self._subscriptions.get(topic, []))

        for subscription in subscribers:
            try:
                snapshot = subscription.loader()
            except Exception:
                logger.exception('Reloading snapshot for topic %s failed; subscriber keeps its last snapshot.', topic)
                continue
            subscription.push(snapshot)


# Process-wide feed; the HTTP routes build their stores on it.
change_feed = ChangeFeed()
