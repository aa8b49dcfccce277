"""
Pydantic Schemas

Domain values shared between the store adapters, the core components and
the HTTP surface, plus the request/response bodies of the API.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from foodstall.models import ItemType, OrderStatus


# =============================================================================
# DOMAIN VALUES
# =============================================================================

class OrderLine(BaseModel):
    """One confirmed, purchased unit as recorded in the order log."""

    model_config = ConfigDict(frozen=True)

    id: int
    item_type: ItemType
    unit_price: int = Field(..., gt=0)
    ticket_number: int = Field(..., ge=1)
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING


class NewOrderLine(BaseModel):
    """A line about to be inserted. Status is always pending on insert."""

    item_type: ItemType
    unit_price: int = Field(..., gt=0)
    ticket_number: int = Field(..., ge=1)


class ChangeEventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"


class ChangeEvent(BaseModel):
    """
    "Something changed" signal on a table.

    Receivers must treat it as a cue to refetch, not as a delta;
    row_ids is informational only.
    """

    db_schema: str = "public"
    table: str = "orders"
    event_type: ChangeEventType
    row_ids: List[int] = Field(default_factory=list)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderLineCreate(BaseModel):
    """Single line submitted by a station."""
    item_type: ItemType = Field(..., examples=["apple"])
    ticket_number: int = Field(..., ge=1, examples=[12])


class OrderBatchCreate(BaseModel):
    """A whole confirmed basket."""
    lines: List[OrderLineCreate] = Field(..., min_length=1)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderLineResponse(BaseModel):
    """Response schema for a single order line."""
    id: int
    item_type: str
    unit_price: int
    ticket_number: int
    display_label: int
    status: str
    created_at: datetime


class OrderListResponse(BaseModel):
    """Response for the full order log."""
    total: int
    pending: int
    orders: List[OrderLineResponse]


class OrderBatchResponse(BaseModel):
    """Response after appending a basket."""
    success: bool
    message: str
    orders: List[OrderLineResponse]


class TicketReservationResponse(BaseModel):
    """A freshly reserved ticket number."""
    item_type: str
    ticket_number: int
    display_label: int


class CatalogItemResponse(BaseModel):
    item_type: str
    label: str
    unit_price: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    store: str
    change_feed: str
    timestamp: datetime
