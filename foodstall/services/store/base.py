"""
Order Store Abstract Base Class

Defines the three capabilities the core needs from the shared store:
    - an atomic next_ticket_number(item_type) primitive
    - row-level insert / status update / select over the orders table
    - (the change feed lives in services.realtime)

Both InMemoryOrderStore and SqlOrderStore implement this interface, so
stations and the kitchen display behave identically in development and
production.

Design Pattern: Strategy Pattern
    - Runtime switching between the in-memory and SQL stores
    - Tests drive the core against the in-memory store with injected failures
"""

import enum
from abc import ABC, abstractmethod
from typing import Sequence

from foodstall.models import ItemType
from foodstall.schemas import NewOrderLine, OrderLine


class ServeOutcome(str, enum.Enum):
    """Result of a conditional pending -> served update."""
    UPDATED = "updated"
    ALREADY_SERVED = "already_served"
    NOT_FOUND = "not_found"


class BaseOrderStore(ABC):
    """
    Abstract base class for order stores.

    Implementations raise StoreError (or TicketConflict) for every
    infrastructure failure; they never return partial results.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'memory', 'postgresql')."""
        pass

    @abstractmethod
    async def next_ticket_number(self, item_type: ItemType) -> int:
        """
        Atomically increment and return the counter for item_type.

        Concurrent callers always receive distinct numbers.
        """
        pass

    @abstractmethod
    async def insert_lines(self, lines: Sequence[NewOrderLine]) -> list[OrderLine]:
        """
        Insert all lines in one transaction with status pending.

        Returns the stored lines with authoritative ids and timestamps,
        in insertion order. Either every line is stored or none is.
        """
        pass

    @abstractmethod
    async def mark_served(self, line_id: int) -> ServeOutcome:
        """Set status to served only if the line is currently pending."""
        pass

    @abstractmethod
    async def select_all(self) -> list[OrderLine]:
        """All lines ordered by created_at ascending (id breaks ties)."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check store connectivity."""
        pass

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
