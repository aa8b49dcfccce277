"""
SQLAlchemy Database Models

The shared order log and the per-item ticket counters it relies on.
Columns of the orders table mirror the store contract:
id, item, price, ticket_number, status, created_at.
"""

import enum

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from foodstall.database import Base


class OrderStatus(str, enum.Enum):
    """Order line status. SERVED is terminal."""
    PENDING = "pending"
    SERVED = "served"


class ItemType(str, enum.Enum):
    """The fixed two-item catalog."""
    APPLE = "apple"
    BANANA = "banana"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class OrderRecord(Base):
    """
    One confirmed order line.

    Append-mostly: rows are inserted on basket confirm and only the
    status column ever changes afterwards (pending -> served).
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("item", "ticket_number", name="uq_orders_item_ticket"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    item = Column(String(20), nullable=False, index=True)
    price = Column(Integer, nullable=False)
    ticket_number = Column(Integer, nullable=False)

    status = Column(
        Enum(
            OrderStatus,
            name="order_status",
            values_callable=_enum_values,
            native_enum=False,
        ),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True,
    )

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self):
        return f"<OrderRecord #{self.id} - {self.item} #{self.ticket_number} - {self.status.value}>"


class TicketCounter(Base):
    """
    Last ticket number handed out per item type.

    Only ever advanced by a single UPDATE ... RETURNING statement, so
    concurrent stations cannot read the same value.
    """
    __tablename__ = "ticket_counters"

    item = Column(String(20), primary_key=True)
    last_number = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<TicketCounter(item={self.item}, last_number={self.last_number})>"
