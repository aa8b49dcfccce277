"""
Station and Kitchen View-Models

OrderStation: one order-entry station. Owns a staging basket and a mirror
of the order log; several stations may run at once, each in its own
process, sharing one store and one change feed.

KitchenDisplay: the single kitchen view. Shows the pending queue with
display labels and drives lines to served through the two-step
complete / hand-off gate.

Neither class ever raises on a store failure: the failure is recorded in
last_error and returned as an OperationResult, and the in-memory state
stays as it was.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from foodstall.basket import StagedLine, StagingBasket
from foodstall.catalog import get_catalog, parse_item_type
from foodstall.core.config import Settings, get_settings
from foodstall.exceptions import SequencerUnavailable, UnknownItem
from foodstall.lifecycle import HandOffGate, OperationResult, OrderLifecycle
from foodstall.models import ItemType
from foodstall.order_log import OrderLog
from foodstall.schemas import OrderLine
from foodstall.services.realtime.base import BaseChangeFeed
from foodstall.sync import OrderLogMirror
from foodstall.tickets import TicketSequencer, display_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueEntry:
    """One row of a rendered queue or basket."""
    key: Union[int, str]
    item_type: ItemType
    label: str
    ticket_number: int
    display_label: int
    unit_price: int
    armed: bool = False


class _MirroredView:
    """Shared start/close handling for views backed by an OrderLogMirror."""

    def __init__(self, name: str, order_log: OrderLog, feed: BaseChangeFeed, settings: Settings):
        self.settings = settings
        self.order_log = order_log
        self.lifecycle = OrderLifecycle(order_log)
        self.mirror = OrderLogMirror(
            order_log,
            feed,
            retry_delay=settings.refresh_retry_delay,
            name=name,
        )
        self.catalog = get_catalog(settings)
        self.last_error: Optional[str] = None

    async def start(self) -> bool:
        return await self.mirror.start()

    async def close(self) -> None:
        await self.mirror.close()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    @property
    def total_count(self) -> int:
        return self.mirror.total_count

    @property
    def pending_count(self) -> int:
        return self.mirror.pending_count

    @property
    def refresh_error(self) -> Optional[str]:
        return self.mirror.last_error

    def _label(self, ticket_number: int) -> int:
        return display_label(ticket_number, self.settings.ticket_count)

    def _record(self, result: OperationResult) -> OperationResult:
        self.last_error = None if result.success else result.error_message
        return result


class OrderStation(_MirroredView):

    def __init__(
        self,
        station_id: str,
        order_log: OrderLog,
        sequencer: TicketSequencer,
        feed: BaseChangeFeed,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        super().__init__(f"station-{station_id}", order_log, feed, settings)
        self.station_id = station_id
        self.basket = StagingBasket(
            sequencer,
            order_log,
            reserve_every_add=settings.reserve_every_add,
        )

    # =========================================================================
    # BASKET
    # =========================================================================

    @property
    def subtotal(self) -> int:
        return self.basket.subtotal

    @property
    def can_confirm(self) -> bool:
        return not self.basket.is_empty and not self.basket.confirming

    @property
    def staged_lines(self) -> list[QueueEntry]:
        return [self._entry(line) for line in self.basket.lines]

    def _entry(self, line: StagedLine) -> QueueEntry:
        return QueueEntry(
            key=line.local_id,
            item_type=line.item_type,
            label=self.catalog[line.item_type].label,
            ticket_number=line.ticket_number,
            display_label=self._label(line.ticket_number),
            unit_price=line.unit_price,
        )

    async def add_item(self, item_type: Union[str, ItemType]) -> OperationResult:
        """Stage one unit at its catalog price."""
        try:
            item_type = parse_item_type(item_type)
            await self.basket.add(item_type, self.catalog[item_type].unit_price)
        except UnknownItem as e:
            logger.warning(f"[{self.station_id}] {e}")
            return self._record(OperationResult.failed(e))
        except SequencerUnavailable as e:
            logger.error(f"[{self.station_id}] add aborted: {e}")
            return self._record(OperationResult.failed(e))

        return self._record(OperationResult.ok())

    async def confirm(self) -> OperationResult:
        result = await self.lifecycle.confirm_basket(self.basket)
        if result.success:
            logger.info(f"[{self.station_id}] confirmed {len(result.lines)} line(s)")
            # Show the committed lines even if the change event never arrives.
            await self.mirror.refresh()
        return self._record(result)

    def clear(self) -> None:
        self.basket.clear()
        self.last_error = None


class KitchenDisplay(_MirroredView):

    def __init__(
        self,
        order_log: OrderLog,
        feed: BaseChangeFeed,
        settings: Optional[Settings] = None,
        name: str = "kitchen",
    ):
        super().__init__(name, order_log, feed, settings or get_settings())
        self.gate = HandOffGate()
        self._serving: set[int] = set()
        self.mirror.add_listener(self._on_refresh)

    async def _on_refresh(self, lines: list[OrderLine]) -> None:
        armed = self.gate.armed_id
        if armed is not None and not any(line.id == armed for line in OrderLog.pending(lines)):
            # Served elsewhere (another display) or vanished.
            self.gate.disarm()

    @property
    def armed_id(self) -> Optional[int]:
        return self.gate.armed_id

    @property
    def pending_queue(self) -> list[QueueEntry]:
        return [
            QueueEntry(
                key=line.id,
                item_type=line.item_type,
                label=self.catalog[line.item_type].label,
                ticket_number=line.ticket_number,
                display_label=self._label(line.ticket_number),
                unit_price=line.unit_price,
                armed=self.gate.is_armed(line.id),
            )
            for line in self.mirror.pending
        ]

    def complete(self, line_id: int) -> bool:
        """
        First click: arm a pending line for hand-off.

        Arming another line disarms the previous one. Returns False when
        the line is not in the pending queue.
        """
        if not any(line.id == line_id for line in self.mirror.pending):
            return False
        self.gate.arm(line_id)
        return True

    def click_outside(self) -> None:
        self.gate.disarm()

    async def hand_off(self, line_id: int) -> OperationResult:
        """Second click: mark the armed line served."""
        if not self.gate.is_armed(line_id):
            result = OperationResult(
                success=False,
                error_code="not_armed",
                error_message=f"Line #{line_id} is not armed for hand-off",
            )
            return self._record(result)
        if line_id in self._serving:
            result = OperationResult(
                success=False,
                error_code="serve_in_progress",
                error_message=f"Line #{line_id} is already being handed off",
            )
            return self._record(result)

        self._serving.add(line_id)
        try:
            result = await self.lifecycle.serve(line_id)
        finally:
            self._serving.discard(line_id)
            if self.gate.is_armed(line_id):
                self.gate.disarm()

        if result.success:
            await self.mirror.refresh()
        return self._record(result)
