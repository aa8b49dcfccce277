"""Tests for the order log."""

import random
from dataclasses import dataclass

import pytest

from foodstall.exceptions import (
    AlreadyServed,
    CommitFailed,
    EmptyBasket,
    LineNotFound,
    RefreshFailed,
    ServeFailed,
    StoreError,
)
from foodstall.models import ItemType, OrderStatus
from foodstall.order_log import OrderLog
from foodstall.schemas import ChangeEventType, NewOrderLine
from foodstall.services.realtime.mock import InMemoryChangeFeed


@dataclass
class IncomingLine:
    item_type: ItemType
    unit_price: int
    ticket_number: int
    status: OrderStatus = OrderStatus.SERVED


def lines_for(*pairs):
    return [NewOrderLine(item_type=item, unit_price=350, ticket_number=n) for item, n in pairs]


class TestAppend:

    @pytest.mark.asyncio
    async def test_status_is_forced_to_pending(self, order_log):
        stored = await order_log.append([IncomingLine(ItemType.APPLE, 350, 1)])

        assert stored[0].status == OrderStatus.PENDING
        assert stored[0].id > 0

    @pytest.mark.asyncio
    async def test_announces_insert(self, order_log, feed):
        stored = await order_log.append(lines_for((ItemType.APPLE, 1), (ItemType.BANANA, 1)))

        event = feed.published[-1]
        assert event.event_type == ChangeEventType.INSERT
        assert event.table == "orders"
        assert event.row_ids == [line.id for line in stored]

    @pytest.mark.asyncio
    async def test_empty_append_rejected(self, order_log, store):
        with pytest.raises(EmptyBasket):
            await order_log.append([])
        assert store.calls["insert_lines"] == 0

    @pytest.mark.asyncio
    async def test_duplicate_ticket_is_a_commit_failure(self, order_log):
        await order_log.append(lines_for((ItemType.APPLE, 7)))

        with pytest.raises(CommitFailed):
            await order_log.append(lines_for((ItemType.BANANA, 7), (ItemType.APPLE, 7)))

        # All or nothing: the banana was not stored either
        lines = await order_log.list_all()
        assert [(line.item_type, line.ticket_number) for line in lines] == [(ItemType.APPLE, 7)]

    @pytest.mark.asyncio
    async def test_store_failure_is_a_commit_failure(self, order_log, store, feed):
        store.fail_next("insert_lines")

        with pytest.raises(CommitFailed):
            await order_log.append(lines_for((ItemType.APPLE, 1)))
        assert feed.published == []

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_undo_commit(self, store):
        class BrokenFeed(InMemoryChangeFeed):
            async def publish(self, event):
                raise StoreError("feed down")

        order_log = OrderLog(store, BrokenFeed())
        stored = await order_log.append(lines_for((ItemType.APPLE, 1)))

        assert len(stored) == 1
        assert len(await order_log.list_all()) == 1


class TestSetServed:

    @pytest.mark.asyncio
    async def test_serves_pending_line(self, order_log, feed):
        [line] = await order_log.append(lines_for((ItemType.APPLE, 1)))

        assert await order_log.set_served(line.id) is None

        [after] = await order_log.list_all()
        assert after.status == OrderStatus.SERVED
        assert feed.published[-1].event_type == ChangeEventType.UPDATE
        assert feed.published[-1].row_ids == [line.id]

    @pytest.mark.asyncio
    async def test_already_served_has_no_side_effects(self, order_log, feed):
        [line] = await order_log.append(lines_for((ItemType.APPLE, 1)))
        await order_log.set_served(line.id)
        published = len(feed.published)

        with pytest.raises(AlreadyServed):
            await order_log.set_served(line.id)

        [after] = await order_log.list_all()
        assert after.status == OrderStatus.SERVED
        assert len(feed.published) == published

    @pytest.mark.asyncio
    async def test_unknown_line(self, order_log):
        with pytest.raises(LineNotFound):
            await order_log.set_served(999)

    @pytest.mark.asyncio
    async def test_store_failure_leaves_line_pending(self, order_log, store):
        [line] = await order_log.append(lines_for((ItemType.APPLE, 1)))
        store.fail_next("mark_served")

        with pytest.raises(ServeFailed):
            await order_log.set_served(line.id)

        [after] = await order_log.list_all()
        assert after.status == OrderStatus.PENDING


class TestListAll:

    @pytest.mark.asyncio
    async def test_ordered_by_creation(self, order_log):
        await order_log.append(lines_for((ItemType.BANANA, 1)))
        await order_log.append(lines_for((ItemType.APPLE, 1), (ItemType.APPLE, 2)))

        lines = await order_log.list_all()

        assert [line.id for line in lines] == sorted(line.id for line in lines)
        assert [line.created_at for line in lines] == sorted(line.created_at for line in lines)

    @pytest.mark.asyncio
    async def test_failure_is_a_refresh_failure(self, order_log, store):
        store.fail_next("select_all")
        with pytest.raises(RefreshFailed):
            await order_log.list_all()

    @pytest.mark.asyncio
    async def test_pending_matches_lines_never_served(self, order_log):
        rng = random.Random(7)
        counters = {ItemType.APPLE: 0, ItemType.BANANA: 0}
        all_ids, served = [], set()

        for _ in range(40):
            if all_ids and rng.random() < 0.4:
                target = rng.choice(all_ids)
                try:
                    await order_log.set_served(target)
                    served.add(target)
                except AlreadyServed:
                    assert target in served
            else:
                item = rng.choice(list(ItemType))
                counters[item] += 1
                stored = await order_log.append(lines_for((item, counters[item])))
                all_ids.extend(line.id for line in stored)

        pending = OrderLog.pending(await order_log.list_all())
        assert {line.id for line in pending} == set(all_ids) - served
