"""
Ticket Sequencer

Ticket numbers are unbounded and strictly increasing per item type; the
authoritative counter lives in the shared store and is advanced with a
single atomic increment-and-return call. Stations never compute a fresh
number from their own memory.

The number shown to customers is a cyclic label over the physical
tickets (1..TICKET_COUNT). It is presentation only: uniqueness and
ordering always use the raw number.
"""

import logging
from typing import Union

from foodstall.catalog import parse_item_type
from foodstall.exceptions import SequencerUnavailable, StoreError
from foodstall.models import ItemType
from foodstall.services.store.base import BaseOrderStore

logger = logging.getLogger(__name__)

TICKET_COUNT = 50


def display_label(ticket_number: int, ticket_count: int = TICKET_COUNT) -> int:
    """
    Map a raw ticket number onto the repeating 1..ticket_count cycle.

    >>> display_label(1), display_label(50), display_label(51)
    (1, 50, 1)
    """
    if ticket_count < 1:
        raise ValueError("ticket_count must be positive")
    if ticket_number < 1:
        raise ValueError("ticket_number must be positive")
    return (ticket_number - 1) % ticket_count + 1


class TicketSequencer:
    """Reserves the next ticket number for an item type."""

    def __init__(self, store: BaseOrderStore):
        self._store = store

    async def reserve(self, item_type: Union[str, ItemType]) -> int:
        """
        Reserve a brand-new ticket number.

        Raises:
            UnknownItem: item_type is not on the catalog
            SequencerUnavailable: the store call failed or returned garbage
        """
        item_type = parse_item_type(item_type)

        try:
            number = await self._store.next_ticket_number(item_type)
        except StoreError as e:
            logger.error(f"Ticket reservation failed for {item_type.value}: {e}")
            raise SequencerUnavailable(
                f"Could not reserve a {item_type.value} ticket", cause=e
            ) from e

        if isinstance(number, bool) or not isinstance(number, int) or number < 1:
            logger.error(f"Store returned invalid ticket number {number!r} for {item_type.value}")
            raise SequencerUnavailable(f"Invalid ticket number from store: {number!r}")

        logger.debug(f"Reserved {item_type.value} ticket {number}")
        return number
