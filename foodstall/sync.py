"""
Order Log Synchronization

OrderLogMirror keeps a local copy of the full order log up to date for one
observer (a station or a kitchen display). Every change signal triggers an
idempotent full refetch, so duplicate or out-of-order signals are
harmless.

Guarantees:
    - The subscription is live before the initial fetch starts, so no
      change between the two can be missed.
    - Refreshes run one at a time; a fetch that started after a signal
      arrived satisfies that signal, so bursts collapse into one fetch and
      an older snapshot never replaces a newer one.
    - A failed refresh keeps the last known-good lines and schedules a
      retry.
    - A failed or lost subscription is reported through last_error and
      re-established in the background, followed by a full refetch.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from foodstall.exceptions import RefreshFailed, StoreError
from foodstall.order_log import OrderLog
from foodstall.schemas import ChangeEvent, OrderLine
from foodstall.services.realtime.base import BaseChangeFeed, Subscription

logger = logging.getLogger(__name__)

Listener = Callable[[list[OrderLine]], Awaitable[None]]


class OrderLogMirror:

    def __init__(
        self,
        order_log: OrderLog,
        feed: BaseChangeFeed,
        retry_delay: float = 2.0,
        name: str = "observer",
    ):
        self._order_log = order_log
        self._feed = feed
        self.retry_delay = retry_delay
        self.name = name

        self._lines: list[OrderLine] = []
        self._listeners: list[Listener] = []
        self._subscription: Optional[Subscription] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._running = False

        self._refresh_lock = asyncio.Lock()
        self._requested = 0
        self._satisfied = 0

        self.loaded = False
        self.refresh_count = 0
        self._refresh_error: Optional[str] = None
        self._feed_error: Optional[str] = None

    # =========================================================================
    # DERIVED VIEWS
    # =========================================================================

    @property
    def lines(self) -> list[OrderLine]:
        return list(self._lines)

    @property
    def pending(self) -> list[OrderLine]:
        return OrderLog.pending(self._lines)

    @property
    def total_count(self) -> int:
        return len(self._lines)

    @property
    def pending_count(self) -> int:
        return len(self.pending)

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.live

    @property
    def last_error(self) -> Optional[str]:
        """Most recent unresolved failure: a refresh first, then the feed."""
        return self._refresh_error or self._feed_error

    def add_listener(self, listener: Listener) -> None:
        """Call listener with the new lines after every successful refresh."""
        self._listeners.append(listener)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> bool:
        """
        Subscribe to the change feed, then load the full log.

        Returns whether both steps succeeded. Neither failure raises: the
        mirror records it in last_error and retries in the background.
        """
        self._running = True
        subscribed = self.subscribed or await self._subscribe()
        loaded = await self.refresh()
        return subscribed and loaded

    async def close(self) -> None:
        self._running = False
        if self._retry_task and not self._retry_task.done():
            self._retry_task.cancel()
            try:
                await self._retry_task
            except asyncio.CancelledError:
                pass
        self._retry_task = None
        await self._drop_subscription()

    async def _subscribe(self) -> bool:
        try:
            subscription = await self._feed.subscribe(self._on_change)
        except StoreError as e:
            self._feed_error = e.message
            logger.warning(f"[{self.name}] could not subscribe to order changes: {e}")
            self._schedule_retry()
            return False

        subscription.on_lost = self._on_subscription_lost
        self._subscription = subscription
        self._feed_error = None
        logger.info(f"[{self.name}] subscribed to order changes")
        return True

    async def _drop_subscription(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()
            logger.info(f"[{self.name}] unsubscribed from order changes")

    def _on_subscription_lost(self, subscription: Subscription) -> None:
        if subscription is not self._subscription:
            return
        self._feed_error = "Lost connection to order changes"
        self._schedule_retry()

    async def _on_change(self, event: ChangeEvent) -> None:
        logger.debug(f"[{self.name}] {event.event_type.value} on {event.table} {event.row_ids}")
        await self.refresh()

    # =========================================================================
    # REFRESH
    # =========================================================================

    async def refresh(self) -> bool:
        """Refetch the full log. Returns False if the fetch failed."""
        self._requested += 1
        ticket = self._requested

        async with self._refresh_lock:
            if self._satisfied >= ticket:
                # A fetch that began after this request already completed.
                return self._refresh_error is None

            covers = self._requested
            try:
                lines = await self._order_log.list_all()
            except RefreshFailed as e:
                self._refresh_error = e.message
                logger.warning(f"[{self.name}] refresh failed, keeping last known orders: {e}")
                self._schedule_retry()
                return False

            self._lines = lines
            self._satisfied = covers
            self.loaded = True
            self._refresh_error = None
            self.refresh_count += 1

        for listener in list(self._listeners):
            try:
                await listener(self.lines)
            except Exception as e:
                logger.exception(f"[{self.name}] listener failed: {e}")
        return True

    def _schedule_retry(self) -> None:
        if not self._running:
            return
        if self._retry_task and not self._retry_task.done():
            return
        self._retry_task = asyncio.create_task(self._retry())

    async def _retry(self) -> None:
        await asyncio.sleep(self.retry_delay)
        self._retry_task = None

        if not self.subscribed:
            logger.info(f"[{self.name}] re-subscribing to order changes")
            await self._drop_subscription()
            await self._subscribe()

        # Changes may have been missed while the feed was down.
        logger.info(f"[{self.name}] retrying order refresh")
        await self.refresh()
