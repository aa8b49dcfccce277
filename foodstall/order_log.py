"""
Order Log

The durable, shared record of every confirmed order line. All stations
and the kitchen display derive their views from list_all(); every
acknowledged mutation is followed by a change event on the feed.
"""

import logging
from typing import Iterable, Optional, Protocol, Sequence

from foodstall.exceptions import (
    AlreadyServed,
    CommitFailed,
    EmptyBasket,
    LineNotFound,
    RefreshFailed,
    ServeFailed,
    StoreError,
    TicketConflict,
)
from foodstall.models import ItemType
from foodstall.schemas import ChangeEvent, ChangeEventType, NewOrderLine, OrderLine
from foodstall.services.realtime.base import DEFAULT_SCHEMA, ORDERS_TABLE, BaseChangeFeed
from foodstall.services.store.base import BaseOrderStore, ServeOutcome

logger = logging.getLogger(__name__)


class LineLike(Protocol):
    item_type: ItemType
    unit_price: int
    ticket_number: int


class OrderLog:
    """Append-mostly order log over a store, announcing changes on a feed."""

    def __init__(self, store: BaseOrderStore, feed: Optional[BaseChangeFeed] = None):
        self.store = store
        self.feed = feed

    async def append(self, lines: Sequence[LineLike]) -> list[OrderLine]:
        """
        Insert all lines as one batch.

        Any status carried by the input is ignored; rows are always
        stored as pending with store-assigned ids and timestamps.

        Raises:
            EmptyBasket: no lines given
            CommitFailed: the store rejected or could not perform the insert
        """
        if not lines:
            raise EmptyBasket("Nothing to append")

        rows = [
            NewOrderLine(
                item_type=line.item_type,
                unit_price=line.unit_price,
                ticket_number=line.ticket_number,
            )
            for line in lines
        ]

        try:
            stored = await self.store.insert_lines(rows)
        except TicketConflict as e:
            logger.error(f"Commit rejected, ticket already in use: {e}")
            raise CommitFailed("A ticket number in this order is already taken", cause=e) from e
        except StoreError as e:
            logger.error(f"Commit of {len(rows)} line(s) failed: {e}")
            raise CommitFailed("Could not save the order", cause=e) from e

        logger.info(
            f"Appended {len(stored)} line(s): "
            + ", ".join(f"{line.item_type.value}#{line.ticket_number}" for line in stored)
        )
        await self._announce(ChangeEventType.INSERT, [line.id for line in stored])
        return stored

    async def set_served(self, line_id: int) -> None:
        """
        Mark one pending line as served.

        Raises:
            LineNotFound: no such line (nothing changed)
            AlreadyServed: line was already served (nothing changed)
            ServeFailed: the store call failed
        """
        try:
            outcome = await self.store.mark_served(line_id)
        except StoreError as e:
            logger.error(f"Serving line #{line_id} failed: {e}")
            raise ServeFailed(f"Could not mark line #{line_id} served", cause=e) from e

        if outcome == ServeOutcome.NOT_FOUND:
            raise LineNotFound(f"Line #{line_id} does not exist")
        if outcome == ServeOutcome.ALREADY_SERVED:
            raise AlreadyServed(f"Line #{line_id} is already served")

        logger.info(f"Line #{line_id} served")
        await self._announce(ChangeEventType.UPDATE, [line_id])

    async def list_all(self) -> list[OrderLine]:
        """
        Every line ordered by created_at ascending.

        Raises:
            RefreshFailed: the store call failed
        """
        try:
            return await self.store.select_all()
        except StoreError as e:
            logger.warning(f"Order log fetch failed: {e}")
            raise RefreshFailed("Could not load orders", cause=e) from e

    @staticmethod
    def pending(lines: Iterable[OrderLine]) -> list[OrderLine]:
        return [line for line in lines if line.is_pending]

    async def _announce(self, event_type: ChangeEventType, row_ids: list[int]) -> None:
        if self.feed is None:
            return
        event = ChangeEvent(
            db_schema=DEFAULT_SCHEMA,
            table=ORDERS_TABLE,
            event_type=event_type,
            row_ids=row_ids,
        )
        try:
            await self.feed.publish(event)
        except StoreError as e:
            # The mutation is already durable; observers catch up on their next refresh.
            logger.warning(f"Change event not delivered: {e}")
