"""
Pytest configuration and shared fixtures.

Every fixture builds fresh in-memory adapters, so tests never share
counters or subscriptions.
"""

import pytest
import pytest_asyncio

from foodstall.core.config import Settings
from foodstall.order_log import OrderLog
from foodstall.services.realtime.mock import InMemoryChangeFeed
from foodstall.services.store.mock import InMemoryOrderStore
from foodstall.stations import KitchenDisplay, OrderStation
from foodstall.tickets import TicketSequencer


@pytest.fixture
def settings():
    return Settings(
        apple_price=350,
        banana_price=350,
        ticket_count=50,
        reserve_every_add=False,
        refresh_retry_delay=0.01,
    )


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def feed():
    return InMemoryChangeFeed()


@pytest.fixture
def order_log(store, feed):
    return OrderLog(store, feed)


@pytest.fixture
def sequencer(store):
    return TicketSequencer(store)


@pytest_asyncio.fixture
async def station(order_log, sequencer, feed, settings):
    async with OrderStation("A", order_log, sequencer, feed, settings) as station:
        yield station


@pytest_asyncio.fixture
async def kitchen(order_log, feed, settings):
    async with KitchenDisplay(order_log, feed, settings) as kitchen:
        yield kitchen
