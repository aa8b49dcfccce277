"""
In-Memory Order Store

Simulates the shared store for development and testing without a database.
Behaves like the SQL store (atomic counters, unique tickets, all-or-nothing
inserts) and can simulate latency and failures.

Features:
    - Configurable random failure rate
    - Deterministic failure injection per operation (fail_next)
    - Simulated network latency
"""

import asyncio
import itertools
import logging
import random
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from foodstall.exceptions import StoreError, TicketConflict
from foodstall.models import ItemType, OrderStatus
from foodstall.schemas import NewOrderLine, OrderLine
from foodstall.services.store.base import BaseOrderStore, ServeOutcome

logger = logging.getLogger(__name__)

OPERATIONS = ("next_ticket_number", "insert_lines", "mark_served", "select_all")


class InMemoryOrderStore(BaseOrderStore):
    """
    Process-local order store.

    Attributes:
        failure_rate: Probability of a simulated failure (0.0 - 1.0)
        min_latency: Minimum simulated latency in seconds
        max_latency: Maximum simulated latency in seconds
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
    ):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0.0 and 1.0")

        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency

        self._lock = asyncio.Lock()
        self._counters: dict[ItemType, int] = defaultdict(int)
        self._rows: dict[int, OrderLine] = {}
        self._ids = itertools.count(1)
        self._forced_failures: dict[str, int] = defaultdict(int)
        self._clock_origin = datetime.now(timezone.utc)
        self.calls: dict[str, int] = defaultdict(int)

        logger.info(
            f"InMemoryOrderStore initialized "
            f"(failure_rate={failure_rate:.0%}, latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        return "memory"

    # =========================================================================
    # FAILURE SIMULATION
    # =========================================================================

    def fail_next(self, operation: str, times: int = 1) -> None:
        """Make the next `times` calls of `operation` raise StoreError."""
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation {operation!r}. Options: {OPERATIONS}")
        self._forced_failures[operation] += times

    async def _simulate(self, operation: str) -> None:
        self.calls[operation] += 1

        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

        if self._forced_failures[operation] > 0:
            self._forced_failures[operation] -= 1
            logger.warning(f"Simulated {operation} failure (forced)")
            raise StoreError(f"Simulated {operation} failure")

        if self.failure_rate and random.random() < self.failure_rate:
            logger.warning(f"Simulated {operation} failure (random)")
            raise StoreError(f"Simulated {operation} failure")

    def _now(self, offset: int) -> datetime:
        # Strictly increasing timestamps, even for a batch inserted at once
        return self._clock_origin + timedelta(microseconds=offset)

    # =========================================================================
    # STORE OPERATIONS
    # =========================================================================

    async def next_ticket_number(self, item_type: ItemType) -> int:
        await self._simulate("next_ticket_number")
        async with self._lock:
            self._counters[item_type] += 1
            return self._counters[item_type]

    async def insert_lines(self, lines: Sequence[NewOrderLine]) -> list[OrderLine]:
        await self._simulate("insert_lines")
        async with self._lock:
            taken = {(row.item_type, row.ticket_number) for row in self._rows.values()}
            batch = set()
            for line in lines:
                key = (line.item_type, line.ticket_number)
                if key in taken or key in batch:
                    raise TicketConflict(
                        f"Ticket {line.item_type.value} #{line.ticket_number} already exists"
                    )
                batch.add(key)

            stored = []
            for line in lines:
                line_id = next(self._ids)
                row = OrderLine(
                    id=line_id,
                    item_type=line.item_type,
                    unit_price=line.unit_price,
                    ticket_number=line.ticket_number,
                    status=OrderStatus.PENDING,
                    created_at=self._now(line_id),
                )
                self._rows[line_id] = row
                stored.append(row)
                # Keep the counter ahead of any number committed by continuation
                if line.ticket_number > self._counters[line.item_type]:
                    self._counters[line.item_type] = line.ticket_number
            return stored

    async def mark_served(self, line_id: int) -> ServeOutcome:
        await self._simulate("mark_served")
        async with self._lock:
            row = self._rows.get(line_id)
            if row is None:
                return ServeOutcome.NOT_FOUND
            if row.status == OrderStatus.SERVED:
                return ServeOutcome.ALREADY_SERVED
            self._rows[line_id] = row.model_copy(update={"status": OrderStatus.SERVED})
            return ServeOutcome.UPDATED

    async def select_all(self) -> list[OrderLine]:
        await self._simulate("select_all")
        async with self._lock:
            return sorted(self._rows.values(), key=lambda row: (row.created_at, row.id))

    async def health_check(self) -> bool:
        return True

    def get(self, line_id: int) -> Optional[OrderLine]:
        return self._rows.get(line_id)
