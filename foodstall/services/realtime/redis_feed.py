"""
Redis Change Feed

Fans change events out across processes with Redis pub/sub, so every
station and kitchen display sharing the order log hears about every
insert and status update.

Channel layout:
    {prefix}:{schema}:{table}    e.g. stall:changes:public:orders

Each subscription owns its own PubSub connection and listener task;
closing the subscription cancels the task and unsubscribes.
"""

import asyncio
import logging
from typing import Optional

import redis.asyncio as redis
from pydantic import ValidationError

from foodstall.core.config import get_settings
from foodstall.exceptions import StoreError
from foodstall.schemas import ChangeEvent
from foodstall.services.realtime.base import (
    DEFAULT_SCHEMA,
    ORDERS_TABLE,
    BaseChangeFeed,
    ChangeCallback,
    Subscription,
)

logger = logging.getLogger(__name__)

SUBSCRIBE_TIMEOUT_SECONDS = 5.0


class RedisSubscription(Subscription):

    def __init__(self, pubsub: redis.client.PubSub, channel: str, db_schema: str, table: str):
        super().__init__(db_schema, table)
        self.pubsub = pubsub
        self.channel = channel
        self.task: Optional[asyncio.Task] = None

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True

        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

        try:
            await self.pubsub.unsubscribe(self.channel)
        except redis.RedisError as e:
            logger.warning(f"Error unsubscribing from {self.channel}: {e}")
        finally:
            await self.pubsub.aclose()

        logger.debug(f"Unsubscribed from {self.channel}")


class RedisChangeFeed(BaseChangeFeed):

    def __init__(self, redis_url: Optional[str] = None, prefix: Optional[str] = None,
                 client: Optional[redis.Redis] = None):
        settings = get_settings()
        self.prefix = prefix or settings.change_feed_prefix
        self.client = client or redis.Redis.from_url(
            redis_url or settings.redis_url,
            decode_responses=True,
        )
        self._subscriptions: set[RedisSubscription] = set()
        logger.info(f"RedisChangeFeed initialized (prefix={self.prefix})")

    @property
    def provider_name(self) -> str:
        return "redis"

    def channel_for(self, db_schema: str, table: str) -> str:
        return f"{self.prefix}:{db_schema}:{table}"

    async def subscribe(
        self,
        callback: ChangeCallback,
        db_schema: str = DEFAULT_SCHEMA,
        table: str = ORDERS_TABLE,
    ) -> Subscription:
        channel = self.channel_for(db_schema, table)
        pubsub = self.client.pubsub()

        try:
            await pubsub.subscribe(channel)
            await self._wait_for_confirmation(pubsub, channel)
        except (redis.RedisError, asyncio.TimeoutError) as e:
            await pubsub.aclose()
            logger.error(f"Could not subscribe to {channel}: {e}")
            raise StoreError(f"Could not subscribe to {channel}", cause=e) from e

        subscription = RedisSubscription(pubsub, channel, db_schema, table)
        subscription.task = asyncio.create_task(self._listen(subscription, callback))
        self._subscriptions.add(subscription)
        logger.info(f"Subscribed to {channel}")
        return subscription

    async def _wait_for_confirmation(self, pubsub: redis.client.PubSub, channel: str) -> None:
        # The server acknowledges SUBSCRIBE before it routes any message to us.
        async with asyncio.timeout(SUBSCRIBE_TIMEOUT_SECONDS):
            while True:
                message = await pubsub.get_message(timeout=SUBSCRIBE_TIMEOUT_SECONDS)
                if message and message["type"] == "subscribe" and message["channel"] == channel:
                    return

    async def _listen(self, subscription: RedisSubscription, callback: ChangeCallback) -> None:
        reason = "listener stopped"
        try:
            async for message in subscription.pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    event = ChangeEvent.model_validate_json(message["data"])
                except ValidationError as e:
                    logger.warning(f"Ignoring malformed change event on {subscription.channel}: {e}")
                    continue

                try:
                    await callback(event)
                except Exception as e:
                    logger.exception(f"Change feed subscriber failed: {e}")
        except redis.RedisError as e:
            reason = str(e) or type(e).__name__
            logger.error(f"Lost change feed connection on {subscription.channel}: {e}")
        finally:
            self._subscriptions.discard(subscription)
            # Closed subscriptions were cancelled on purpose; anything else is a lost feed.
            subscription.mark_lost(reason)

    async def publish(self, event: ChangeEvent) -> None:
        channel = self.channel_for(event.db_schema, event.table)
        try:
            receivers = await self.client.publish(channel, event.model_dump_json())
        except redis.RedisError as e:
            logger.error(f"Change event publish failed on {channel}: {e}")
            raise StoreError(f"Change event publish failed on {channel}", cause=e) from e
        logger.debug(f"Published {event.event_type.value} on {channel} to {receivers} subscriber(s)")

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.close()
        await self.client.aclose()
