"""Tests for the Redis change feed, using fakeredis in place of a server."""

import asyncio

import fakeredis
import pytest
import pytest_asyncio
import redis.asyncio as redis

from foodstall.models import ItemType
from foodstall.order_log import OrderLog
from foodstall.schemas import ChangeEvent, ChangeEventType, NewOrderLine
from foodstall.services.realtime.redis_feed import RedisChangeFeed, RedisSubscription
from foodstall.sync import OrderLogMirror


@pytest_asyncio.fixture
async def redis_feed():
    feed = RedisChangeFeed(
        prefix="test:changes",
        client=fakeredis.FakeAsyncRedis(decode_responses=True),
    )
    yield feed
    await feed.close()


async def wait_for(condition, timeout=2.0):
    async with asyncio.timeout(timeout):
        while not condition():
            await asyncio.sleep(0.01)


class TestRedisChangeFeed:

    def test_channel_names(self, redis_feed):
        assert redis_feed.channel_for("public", "orders") == "test:changes:public:orders"

    @pytest.mark.asyncio
    async def test_publish_reaches_subscriber(self, redis_feed):
        received = []

        async def collect(event):
            received.append(event)

        await redis_feed.subscribe(collect)
        await redis_feed.publish(ChangeEvent(event_type=ChangeEventType.INSERT, row_ids=[3, 4]))

        await wait_for(lambda: received)
        assert received[0].event_type == ChangeEventType.INSERT
        assert received[0].row_ids == [3, 4]

    @pytest.mark.asyncio
    async def test_other_tables_are_not_delivered(self, redis_feed):
        received = []

        async def collect(event):
            received.append(event.table)

        await redis_feed.subscribe(collect, table="orders")
        await redis_feed.publish(ChangeEvent(table="menu", event_type=ChangeEventType.UPDATE))
        await redis_feed.publish(ChangeEvent(table="orders", event_type=ChangeEventType.UPDATE))

        await wait_for(lambda: received)
        await asyncio.sleep(0.05)
        assert received == ["orders"]

    @pytest.mark.asyncio
    async def test_malformed_messages_are_skipped(self, redis_feed):
        received = []

        async def collect(event):
            received.append(event)

        await redis_feed.subscribe(collect)
        await redis_feed.client.publish(redis_feed.channel_for("public", "orders"), "not json")
        await redis_feed.publish(ChangeEvent(event_type=ChangeEventType.INSERT))

        await wait_for(lambda: received)
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_closed_subscription_stops_listening(self, redis_feed):
        received = []

        async def collect(event):
            received.append(event)

        subscription = await redis_feed.subscribe(collect)
        await subscription.close()

        assert subscription.closed
        assert subscription.task.done()
        await redis_feed.publish(ChangeEvent(event_type=ChangeEventType.INSERT))
        await asyncio.sleep(0.05)
        assert received == []

    @pytest.mark.asyncio
    async def test_health_check(self, redis_feed):
        assert await redis_feed.health_check() is True

    @pytest.mark.asyncio
    async def test_mirror_follows_changes_across_feed(self, redis_feed, store):
        order_log = OrderLog(store, redis_feed)
        mirror = OrderLogMirror(order_log, redis_feed, name="remote")
        await mirror.start()

        await order_log.append([
            NewOrderLine(item_type=ItemType.APPLE, unit_price=350, ticket_number=1),
        ])

        await wait_for(lambda: mirror.total_count == 1)
        await mirror.close()


class DroppedPubSub:
    """A pub/sub connection whose socket was reset by the server."""

    def __init__(self):
        self.closed = False

    async def listen(self):
        raise redis.ConnectionError("Connection reset by peer")
        yield

    async def unsubscribe(self, *channels):
        raise redis.ConnectionError("Connection reset by peer")

    async def aclose(self):
        self.closed = True


class RecordingRedisFeed(RedisChangeFeed):

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.handed_out = []

    async def subscribe(self, callback, db_schema="public", table="orders"):
        subscription = await super().subscribe(callback, db_schema, table)
        self.handed_out.append(subscription)
        return subscription


class TestDroppedConnection:

    @pytest.mark.asyncio
    async def test_listener_marks_subscription_lost(self, redis_feed):
        lost = []

        async def collect(event):
            pass

        subscription = RedisSubscription(
            DroppedPubSub(),
            redis_feed.channel_for("public", "orders"),
            "public",
            "orders",
        )
        subscription.on_lost = lost.append

        await redis_feed._listen(subscription, collect)

        assert subscription.failed
        assert not subscription.live
        assert lost == [subscription]

        # Closing a dead subscription still releases it
        await subscription.close()
        assert subscription.closed
        assert subscription.pubsub.closed

    @pytest.mark.asyncio
    async def test_closing_does_not_report_a_loss(self, redis_feed):
        lost = []

        async def collect(event):
            pass

        subscription = await redis_feed.subscribe(collect)
        subscription.on_lost = lost.append
        await subscription.close()

        assert lost == []
        assert not subscription.failed

    @pytest.mark.asyncio
    async def test_mirror_resubscribes_after_loss(self, store):
        feed = RecordingRedisFeed(
            prefix="test:changes",
            client=fakeredis.FakeAsyncRedis(decode_responses=True),
        )
        order_log = OrderLog(store, feed)
        mirror = OrderLogMirror(order_log, feed, retry_delay=0.01, name="remote")
        await mirror.start()
        [original] = feed.handed_out

        original.mark_lost("Connection reset by peer")
        assert mirror.last_error is not None

        await wait_for(lambda: len(feed.handed_out) == 2 and mirror.subscribed)
        await order_log.append([
            NewOrderLine(item_type=ItemType.BANANA, unit_price=350, ticket_number=1),
        ])

        await wait_for(lambda: mirror.total_count == 1)
        assert original.closed
        assert mirror.last_error is None
        await mirror.close()
        await feed.close()
