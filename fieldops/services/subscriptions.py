"""
Live document subscriptions.

Subscribers register a snapshot loader and a callback per collection. After
every committed write the document store calls ``notify(collection)``; each
live subscriber re-loads its snapshot and receives it in full. Mirror stores
always ``replace_all`` from these snapshots, so repeated or out-of-order
deliveries converge on the latest remote state.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fieldops.services.mirror_store import MirrorStore

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[], Awaitable[Any]]
SnapshotCallback = Callable[[Any], None]


class Subscription:
    """Handle for one live subscription."""

    def __init__(self, hub: "SubscriptionHub", collection: str, loader: SnapshotLoader, callback: SnapshotCallback):
        self.hub = hub
        self.collection = collection
        self.loader = loader
        self.callback = callback
        self.active = True
        self.deliveries = 0

    async def deliver(self) -> None:
        if not self.active:
            return
        snapshot = await self.loader()
        # Closed while loading
        if not self.active:
            return
        self.callback(snapshot)
        self.deliveries += 1

    def close(self) -> None:
        if self.active:
            self.active = False
            self.hub._discard(self)


class SubscriptionHub:
    """Fan-out of collection change notifications to live subscribers."""

    def __init__(self):
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def subscribe(self, collection: str, loader: SnapshotLoader, callback: SnapshotCallback) -> Subscription:
        subscription = Subscription(self, collection, loader, callback)
        self._subscriptions.setdefault(collection, []).append(subscription)
        logger.debug(f"Subscribed to {collection} (total={self.count(collection)})")
        return subscription

    def _discard(self, subscription: Subscription) -> None:
        subscribers = self._subscriptions.get(subscription.collection, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._subscriptions.pop(subscription.collection, None)

    def count(self, collection: Optional[str] = None) -> int:
        if collection is not None:
            return len(self._subscriptions.get(collection, []))
        return sum(len(subs) for subs in self._subscriptions.values())

    async def notify(self, collection: str) -> int:
        """Deliver a fresh snapshot to every subscriber of ``collection``.

        Returns the number of successful deliveries. Failures are logged per
        subscriber and never reach the writer that triggered the notification.
        """
        subscribers = list(self._subscriptions.get(collection, []))
        if not subscribers:
            return 0

        results = await asyncio.gather(
            *(subscription.deliver() for subscription in subscribers),
            return_exceptions=True,
        )
        delivered = 0
        for subscription, result in zip(subscribers, results):
            if isinstance(result, Exception):
                logger.warning(f"Snapshot delivery to {collection} subscriber failed: {result}")
            else:
                delivered += 1
        return delivered

    def close_all(self) -> None:
        for subscribers in list(self._subscriptions.values()):
            for subscription in list(subscribers):
                subscription.close()
        self._subscriptions.clear()


def bind_mirror(
    hub: SubscriptionHub,
    mirror: MirrorStore,
    collection: str,
    loader: Callable[[], Awaitable[List[dict]]],
) -> Subscription:
    """Keep ``mirror`` equal to the latest snapshot of ``collection``."""
    return hub.subscribe(collection, loader, mirror.replace_all)
