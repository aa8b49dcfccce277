"""
Database Connection Module
Handles the order log database using the SQLAlchemy async engine.
"""

from functools import lru_cache
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from foodstall.core.config import get_settings
import logging

logger = logging.getLogger(__name__)


# Base class for all our models
class Base(DeclarativeBase):
    pass


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite URLs (used by the test-suite) get no pool sizing arguments.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=5,  # Connection pool size
        max_overflow=10,  # Extra connections when pool is full
        pool_pre_ping=True,
    )


@lru_cache()
def get_engine() -> AsyncEngine:
    """Engine for the configured DATABASE_URL, created on first use."""
    settings = get_settings()
    return create_engine(settings.database_url, echo=settings.sql_echo)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory - creates new database sessions."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Objects remain accessible after commit
    )


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """
    Create all tables and seed the ticket counters.

    Each counter starts at the highest ticket number already in the
    orders table, so numbering continues across restarts even if the
    counter table was lost.
    """
    # Registers the tables on Base.metadata
    from foodstall.models import ItemType, OrderRecord, TicketCounter

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with create_session_maker(engine)() as session:
        async with session.begin():
            for item_type in ItemType:
                counter = await session.get(TicketCounter, item_type.value)
                highest = await session.scalar(
                    select(func.coalesce(func.max(OrderRecord.ticket_number), 0))
                    .where(OrderRecord.item == item_type.value)
                )
                if counter is None:
                    session.add(TicketCounter(item=item_type.value, last_number=highest))
                elif counter.last_number < highest:
                    counter.last_number = highest

    logger.info("Database tables created and ticket counters seeded")
