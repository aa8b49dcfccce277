"""
Change Feed Abstract Base Class

A change feed delivers "something changed" signals for a table to every
subscriber. Delivery is at-least-once with no ordering guarantee, so
subscribers must react by refetching full state.
"""

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from foodstall.schemas import ChangeEvent

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]
LostCallback = Callable[["Subscription"], None]

DEFAULT_SCHEMA = "public"
ORDERS_TABLE = "orders"


class Subscription(ABC):
    """
    Handle returned by subscribe(); close() releases the listener.

    A subscription whose transport dies is marked failed and its on_lost
    hook is called once. It stays open until the owner closes it.
    """

    def __init__(self, db_schema: str, table: str):
        self.db_schema = db_schema
        self.table = table
        self.closed = False
        self.failed = False
        self.on_lost: Optional[LostCallback] = None

    @property
    def live(self) -> bool:
        return not self.closed and not self.failed

    def matches(self, event: ChangeEvent) -> bool:
        return event.db_schema == self.db_schema and event.table == self.table

    def mark_lost(self, reason: str) -> None:
        """Record that no further events will arrive on this subscription."""
        if self.closed or self.failed:
            return
        self.failed = True
        logger.warning(f"Subscription to {self.db_schema}.{self.table} lost: {reason}")
        if self.on_lost is not None:
            self.on_lost(self)

    @abstractmethod
    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


class BaseChangeFeed(ABC):
    """Abstract base class for change feeds."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def subscribe(
        self,
        callback: ChangeCallback,
        db_schema: str = DEFAULT_SCHEMA,
        table: str = ORDERS_TABLE,
    ) -> Subscription:
        """
        Register callback for changes on db_schema.table.

        Returns only once the subscription is live: any event published
        after this coroutine completes reaches the callback.
        """
        pass

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """Deliver event to every matching subscriber."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    async def close(self) -> None:
        return None
