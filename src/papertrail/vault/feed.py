"""
In-process change feed for document progress.

Every successful progress write publishes the user's full progress
snapshot. Subscribers either register a callback or consume a blocking
``stream``; neither can break the write that triggered the publish.
"""

import queue
from threading import Lock
from typing import Any, Callable, Dict, Iterator, List, Optional

from loguru import logger


Snapshot = Dict[str, Any]
Callback = Callable[[Snapshot], None]


class Subscription:
    """Handle returned by ``ProgressFeed.subscribe``."""

    def __init__(self, feed: "ProgressFeed", user_id: str, callback: Callback):
        self.feed = feed
        self.user_id = user_id
        self.callback = callback
        self.active = True

    def close(self) -> None:
        """Stop receiving snapshots. Safe to call twice."""
        if self.active:
            self.feed._remove(self)
            self.active = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class ProgressFeed:
    """Per-user publish/subscribe for progress snapshots."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._lock = Lock()

    def subscribe(self, user_id: str, callback: Callback) -> Subscription:
        """Register ``callback`` for every snapshot published for ``user_id``."""
        subscription = Subscription(self, user_id, callback)
        with self._lock:
            self._subscribers.setdefault(user_id, []).append(subscription)
        logger.debug(f"Progress subscriber added for user {user_id}")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.user_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(subscription.user_id, None)

    def subscriber_count(self, user_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(user_id, []))

    def publish(self, user_id: str, snapshot: Snapshot) -> int:
        """
        Deliver a snapshot to every subscriber of ``user_id``.

        Returns:
            int: Number of subscribers that received it
        """
        with self._lock:
            subscribers = list(self._subscribers.get(user_id, []))

        delivered = 0
        for subscription in subscribers:
            try:
                subscription.callback(snapshot)
                delivered += 1
            except Exception as e:
                logger.error(f"Progress subscriber for user {user_id} raised: {str(e)}")
        return delivered

    def stream(self, user_id: str, initial: Optional[Callable[[], Snapshot]] = None,
               timeout: Optional[float] = None) -> Iterator[Snapshot]:
        """
        Iterate over snapshots for ``user_id`` as they are published.

        Args:
            user_id: User to follow
            initial: Loader for a snapshot yielded before any published one;
                called after subscribing so no change falls in between
            timeout: Stop after this many seconds without a snapshot

        Yields:
            Progress snapshots, oldest first
        """
        pending: "queue.Queue[Snapshot]" = queue.Queue()
        subscription = self.subscribe(user_id, pending.put)
        try:
            if initial is not None:
                yield initial()
            while True:
                try:
                    yield pending.get(timeout=timeout)
                except queue.Empty:
                    return
        finally:
            subscription.close()
