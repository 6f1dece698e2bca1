"""In-process broker delivering document change notifications."""

from __future__ import annotations

import logging
import threading

from docledger.domain.entities import ChangeEvent

from .subscription import ChangeSubscription

logger = logging.getLogger(__name__)


class ChangeFeed:
    """Fan committed document writes out to every matching subscription.

    Writers publish after their transaction commits, so subscribers only
    ever see durable changes. Delivery is best effort: a subscription that
    is closed or whose loop has stopped simply stops receiving events.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: set[ChangeSubscription] = set()

    def watch(
        self,
        collection_name: str | None = None,
        *,
        schema_name: str | None = None,
        collection_prefix: str | None = None,
    ) -> ChangeSubscription:
        """Open a subscription. Must be called from a running event loop."""

        subscription = ChangeSubscription(
            collection_name=collection_name,
            schema_name=schema_name,
            collection_prefix=collection_prefix,
            on_close=self._discard,
        )
        with self._lock:
            self._subscriptions.add(subscription)
        return subscription

    def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` and return how many subscriptions received it."""

        with self._lock:
            targets = [sub for sub in self._subscriptions if sub.matches(event)]
        delivered = 0
        for subscription in targets:
            subscription.deliver(event)
            if subscription.closed:
                self._discard(subscription)
            else:
                delivered += 1
        return delivered

    def fail(self, collection_name: str, error: BaseException) -> int:
        """Fail every subscription watching ``collection_name``."""

        with self._lock:
            targets = [
                sub
                for sub in self._subscriptions
                if sub.collection_name == collection_name
            ]
        for subscription in targets:
            subscription.fail(error)
        return len(targets)

    def close_all(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.close()

    @property
    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _discard(self, subscription: ChangeSubscription) -> None:
        with self._lock:
            self._subscriptions.discard(subscription)


__all__ = ["ChangeFeed"]
