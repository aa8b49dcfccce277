"""
Tests for the SQL order store.

Runs against a throwaway SQLite file through aiosqlite; the statements
used (UPDATE ... RETURNING, unique constraint) behave the same on
PostgreSQL.
"""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import delete

from foodstall.database import create_engine, create_session_maker, init_db
from foodstall.exceptions import TicketConflict
from foodstall.models import ItemType, OrderStatus, TicketCounter
from foodstall.schemas import NewOrderLine
from foodstall.services.store.base import ServeOutcome
from foodstall.services.store.sql import SqlOrderStore


def line(item_type, number, price=350):
    return NewOrderLine(item_type=item_type, unit_price=price, ticket_number=number)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path}/orders.db")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_store(engine):
    return SqlOrderStore(engine)


class TestTicketCounter:

    @pytest.mark.asyncio
    async def test_numbers_increase_per_item(self, sql_store):
        apples = [await sql_store.next_ticket_number(ItemType.APPLE) for _ in range(3)]
        banana = await sql_store.next_ticket_number(ItemType.BANANA)

        assert apples == [1, 2, 3]
        assert banana == 1

    @pytest.mark.asyncio
    async def test_concurrent_reservations_are_distinct(self, sql_store):
        numbers = await asyncio.gather(
            *(sql_store.next_ticket_number(ItemType.APPLE) for _ in range(10))
        )
        assert sorted(numbers) == list(range(1, 11))

    @pytest.mark.asyncio
    async def test_missing_counter_row_is_created(self, engine, sql_store):
        async with create_session_maker(engine)() as session:
            async with session.begin():
                await session.execute(delete(TicketCounter))

        assert await sql_store.next_ticket_number(ItemType.BANANA) == 1
        assert await sql_store.next_ticket_number(ItemType.BANANA) == 2

    @pytest.mark.asyncio
    async def test_counter_skips_numbers_committed_by_continuation(self, sql_store):
        assert await sql_store.next_ticket_number(ItemType.APPLE) == 1
        await sql_store.insert_lines([line(ItemType.APPLE, 1), line(ItemType.APPLE, 2)])

        assert await sql_store.next_ticket_number(ItemType.APPLE) == 3

    @pytest.mark.asyncio
    async def test_init_db_seeds_from_existing_orders(self, engine, sql_store):
        await sql_store.insert_lines([line(ItemType.APPLE, 7)])
        async with create_session_maker(engine)() as session:
            async with session.begin():
                await session.execute(delete(TicketCounter))

        await init_db(engine)

        assert await sql_store.next_ticket_number(ItemType.APPLE) == 8
        assert await sql_store.next_ticket_number(ItemType.BANANA) == 1


class TestOrders:

    @pytest.mark.asyncio
    async def test_insert_assigns_ids_and_pending(self, sql_store):
        stored = await sql_store.insert_lines([line(ItemType.APPLE, 1), line(ItemType.BANANA, 1, 200)])

        assert [row.id for row in stored] == sorted(row.id for row in stored)
        assert all(row.status == OrderStatus.PENDING for row in stored)
        assert stored[1].unit_price == 200
        assert stored[0].created_at is not None

    @pytest.mark.asyncio
    async def test_select_all_in_creation_order(self, sql_store):
        await sql_store.insert_lines([line(ItemType.BANANA, 1)])
        await sql_store.insert_lines([line(ItemType.APPLE, 1), line(ItemType.APPLE, 2)])

        rows = await sql_store.select_all()

        assert [(row.item_type, row.ticket_number) for row in rows] == [
            (ItemType.BANANA, 1),
            (ItemType.APPLE, 1),
            (ItemType.APPLE, 2),
        ]

    @pytest.mark.asyncio
    async def test_duplicate_ticket_rejects_whole_batch(self, sql_store):
        await sql_store.insert_lines([line(ItemType.APPLE, 4)])

        with pytest.raises(TicketConflict):
            await sql_store.insert_lines([line(ItemType.BANANA, 1), line(ItemType.APPLE, 4)])

        rows = await sql_store.select_all()
        assert [(row.item_type, row.ticket_number) for row in rows] == [(ItemType.APPLE, 4)]

    @pytest.mark.asyncio
    async def test_same_number_for_different_items_is_allowed(self, sql_store):
        stored = await sql_store.insert_lines([line(ItemType.APPLE, 1), line(ItemType.BANANA, 1)])
        assert len(stored) == 2

    @pytest.mark.asyncio
    async def test_mark_served_outcomes(self, sql_store):
        [row] = await sql_store.insert_lines([line(ItemType.APPLE, 1)])

        assert await sql_store.mark_served(row.id) == ServeOutcome.UPDATED
        assert await sql_store.mark_served(row.id) == ServeOutcome.ALREADY_SERVED
        assert await sql_store.mark_served(row.id + 100) == ServeOutcome.NOT_FOUND

        [after] = await sql_store.select_all()
        assert after.status == OrderStatus.SERVED

    @pytest.mark.asyncio
    async def test_health_check(self, sql_store):
        assert await sql_store.health_check() is True
        assert sql_store.provider_name == "sqlite"
