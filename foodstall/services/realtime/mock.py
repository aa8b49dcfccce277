"""
In-Memory Change Feed

Process-local fan-out used in development mode and by the test-suite.
publish() awaits every matching callback, so once a mutation returns all
local observers have already refreshed.
"""

import asyncio
import logging

from foodstall.schemas import ChangeEvent
from foodstall.services.realtime.base import (
    DEFAULT_SCHEMA,
    ORDERS_TABLE,
    BaseChangeFeed,
    ChangeCallback,
    Subscription,
)

logger = logging.getLogger(__name__)


class InMemorySubscription(Subscription):

    def __init__(self, feed: "InMemoryChangeFeed", callback: ChangeCallback, db_schema: str, table: str):
        super().__init__(db_schema, table)
        self._feed = feed
        self.callback = callback

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._feed._subscriptions.discard(self)


class InMemoryChangeFeed(BaseChangeFeed):

    def __init__(self):
        self._subscriptions: set[InMemorySubscription] = set()
        self.published: list[ChangeEvent] = []

    @property
    def provider_name(self) -> str:
        return "memory"

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def subscribe(
        self,
        callback: ChangeCallback,
        db_schema: str = DEFAULT_SCHEMA,
        table: str = ORDERS_TABLE,
    ) -> Subscription:
        subscription = InMemorySubscription(self, callback, db_schema, table)
        self._subscriptions.add(subscription)
        logger.debug(f"Subscribed to {db_schema}.{table} ({self.subscriber_count} active)")
        return subscription

    async def publish(self, event: ChangeEvent) -> None:
        self.published.append(event)
        targets = [s for s in list(self._subscriptions) if s.matches(event)]
        if not targets:
            return

        results = await asyncio.gather(
            *(s.callback(event) for s in targets),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Change feed subscriber failed: {result!r}")

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.close()
