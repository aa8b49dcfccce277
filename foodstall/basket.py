"""
Staging Basket

A station's local, never-persisted list of lines that have not been
confirmed yet. Only the first line of an item type in a basket reserves
a ticket from the shared sequencer; later lines of the same type
continue from the basket's own last number until the basket is
confirmed or cleared. Numbers skipped by a cleared basket are never
reused.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Union

from foodstall.catalog import parse_item_type
from foodstall.exceptions import ConfirmInProgress, EmptyBasket
from foodstall.models import ItemType, OrderStatus
from foodstall.order_log import OrderLog
from foodstall.schemas import OrderLine
from foodstall.tickets import TicketSequencer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StagedLine:
    """A provisional order line, identified locally until committed."""
    item_type: ItemType
    unit_price: int
    ticket_number: int
    local_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: OrderStatus = OrderStatus.PENDING


class StagingBasket:

    def __init__(
        self,
        sequencer: TicketSequencer,
        order_log: OrderLog,
        reserve_every_add: bool = False,
    ):
        self._sequencer = sequencer
        self._order_log = order_log
        self.reserve_every_add = reserve_every_add
        self._lines: list[StagedLine] = []
        self._confirming = False

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def lines(self) -> tuple[StagedLine, ...]:
        return tuple(self._lines)

    @property
    def subtotal(self) -> int:
        return sum(line.unit_price for line in self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def confirming(self) -> bool:
        return self._confirming

    def __len__(self) -> int:
        return len(self._lines)

    def _last_of(self, item_type: ItemType) -> Optional[StagedLine]:
        for line in reversed(self._lines):
            if line.item_type == item_type:
                return line
        return None

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    async def add(self, item_type: Union[str, ItemType], unit_price: int) -> StagedLine:
        """
        Stage one unit of item_type.

        Raises:
            UnknownItem: item_type is not on the catalog
            SequencerUnavailable: a reservation was needed and failed;
                the basket is left unchanged
        """
        item_type = parse_item_type(item_type)
        if isinstance(unit_price, bool) or not isinstance(unit_price, int) or unit_price <= 0:
            raise ValueError(f"unit_price must be a positive integer, got {unit_price!r}")

        previous = None if self.reserve_every_add else self._last_of(item_type)
        if previous is not None:
            ticket_number = previous.ticket_number + 1
        else:
            ticket_number = await self._sequencer.reserve(item_type)

        line = StagedLine(item_type=item_type, unit_price=unit_price, ticket_number=ticket_number)
        self._lines.append(line)
        logger.debug(f"Staged {item_type.value}#{ticket_number} (subtotal {self.subtotal})")
        return line

    async def confirm(self) -> list[OrderLine]:
        """
        Commit every staged line to the order log as one batch.

        Raises:
            EmptyBasket: nothing staged; the store is not called
            ConfirmInProgress: a previous confirm has not resolved yet
            CommitFailed: the append failed; the basket is left intact
        """
        if self._confirming:
            raise ConfirmInProgress("Order is already being confirmed")
        if not self._lines:
            raise EmptyBasket("Basket is empty")

        submitted = list(self._lines)
        self._confirming = True
        try:
            stored = await self._order_log.append(submitted)
        finally:
            self._confirming = False

        # Lines staged while the append was in flight stay in the basket.
        submitted_ids = {line.local_id for line in submitted}
        self._lines = [line for line in self._lines if line.local_id not in submitted_ids]
        return stored

    def clear(self) -> None:
        """Drop every staged line without touching the store."""
        if self._lines:
            logger.debug(f"Basket cleared ({len(self._lines)} line(s) discarded)")
        self._lines = []
