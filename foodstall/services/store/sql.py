"""
SQL Order Store

Production store backed by PostgreSQL through the SQLAlchemy async engine.

Atomicity:
    - next_ticket_number is one UPDATE ... RETURNING statement on the
      ticket_counters row; the row lock serializes concurrent stations.
    - insert_lines runs every row in one transaction; the
      (item, ticket_number) unique constraint rejects duplicates.
    - mark_served is a conditional single-row UPDATE (status = 'pending').
"""

import logging
from collections import defaultdict
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from foodstall.database import create_session_maker
from foodstall.exceptions import StoreError, TicketConflict
from foodstall.models import ItemType, OrderRecord, OrderStatus, TicketCounter
from foodstall.schemas import NewOrderLine, OrderLine
from foodstall.services.store.base import BaseOrderStore, ServeOutcome

logger = logging.getLogger(__name__)


def _to_line(record: OrderRecord) -> OrderLine:
    return OrderLine(
        id=record.id,
        item_type=ItemType(record.item),
        unit_price=record.price,
        ticket_number=record.ticket_number,
        status=record.status,
        created_at=record.created_at,
    )


class SqlOrderStore(BaseOrderStore):
    """Order store over the orders / ticket_counters tables."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._session_maker: async_sessionmaker[AsyncSession] = create_session_maker(engine)
        logger.info(f"SqlOrderStore initialized ({engine.dialect.name})")

    @property
    def provider_name(self) -> str:
        return self._engine.dialect.name

    # =========================================================================
    # TICKET COUNTER
    # =========================================================================

    async def _increment(self, session: AsyncSession, item_type: ItemType):
        result = await session.execute(
            update(TicketCounter)
            .where(TicketCounter.item == item_type.value)
            .values(last_number=TicketCounter.last_number + 1)
            .returning(TicketCounter.last_number)
        )
        return result.scalar_one_or_none()

    async def next_ticket_number(self, item_type: ItemType) -> int:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    number = await self._increment(session, item_type)
                    if number is not None:
                        return number

                # First reservation ever for this item: create the counter row.
                try:
                    async with session.begin():
                        session.add(TicketCounter(item=item_type.value, last_number=1))
                    return 1
                except IntegrityError:
                    # Another station created it first; fall back to the increment.
                    logger.debug(f"Counter for {item_type.value} created concurrently")

                async with session.begin():
                    number = await self._increment(session, item_type)
                if number is None:
                    raise StoreError(f"Ticket counter for {item_type.value} is missing")
                return number

        except SQLAlchemyError as e:
            logger.error(f"Ticket counter update failed: {e}")
            raise StoreError("Ticket counter update failed", cause=e) from e

    # =========================================================================
    # ORDERS TABLE
    # =========================================================================

    async def insert_lines(self, lines: Sequence[NewOrderLine]) -> list[OrderLine]:
        records = [
            OrderRecord(
                item=line.item_type.value,
                price=line.unit_price,
                ticket_number=line.ticket_number,
                status=OrderStatus.PENDING,
            )
            for line in lines
        ]

        highest: dict[ItemType, int] = defaultdict(int)
        for line in lines:
            highest[line.item_type] = max(highest[line.item_type], line.ticket_number)

        try:
            async with self._session_maker() as session:
                async with session.begin():
                    session.add_all(records)
                    await session.flush()

                    # Numbers taken by basket continuation must never be
                    # handed out again by the counter.
                    for item_type, number in highest.items():
                        await session.execute(
                            update(TicketCounter)
                            .where(TicketCounter.item == item_type.value)
                            .where(TicketCounter.last_number < number)
                            .values(last_number=number)
                        )

                for record in records:
                    await session.refresh(record)
                return [_to_line(record) for record in records]

        except IntegrityError as e:
            logger.warning(f"Ticket collision while inserting {len(records)} line(s): {e}")
            raise TicketConflict("Ticket number already used", cause=e) from e
        except SQLAlchemyError as e:
            logger.error(f"Order insert failed: {e}")
            raise StoreError("Order insert failed", cause=e) from e

    async def mark_served(self, line_id: int) -> ServeOutcome:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    result = await session.execute(
                        update(OrderRecord)
                        .where(OrderRecord.id == line_id)
                        .where(OrderRecord.status == OrderStatus.PENDING)
                        .values(status=OrderStatus.SERVED)
                        .returning(OrderRecord.id)
                    )
                    if result.scalar_one_or_none() is not None:
                        return ServeOutcome.UPDATED

                    exists = await session.scalar(
                        select(OrderRecord.id).where(OrderRecord.id == line_id)
                    )
                    if exists is None:
                        return ServeOutcome.NOT_FOUND
                    return ServeOutcome.ALREADY_SERVED

        except SQLAlchemyError as e:
            logger.error(f"Status update failed for line #{line_id}: {e}")
            raise StoreError("Status update failed", cause=e) from e

    async def select_all(self) -> list[OrderLine]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(OrderRecord).order_by(OrderRecord.created_at.asc(), OrderRecord.id.asc())
                )
                return [_to_line(record) for record in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Order select failed: {e}")
            raise StoreError("Order select failed", cause=e) from e

    async def health_check(self) -> bool:
        try:
            async with self._session_maker() as session:
                await session.execute(select(1))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._engine.dispose()
