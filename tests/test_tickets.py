"""Tests for the ticket sequencer and display labels."""

import asyncio

import pytest

from foodstall.exceptions import SequencerUnavailable, UnknownItem
from foodstall.models import ItemType
from foodstall.services.store.mock import InMemoryOrderStore
from foodstall.tickets import TICKET_COUNT, TicketSequencer, display_label


class TestDisplayLabel:

    def test_first_cycle_is_identity(self):
        assert [display_label(n) for n in (1, 2, 49, 50)] == [1, 2, 49, 50]

    def test_wraps_after_ticket_count(self):
        assert display_label(51) == 1
        assert display_label(100) == 50
        assert display_label(101) == 1

    def test_periodic_and_in_range(self):
        for n in range(1, 500):
            label = display_label(n)
            assert 1 <= label <= TICKET_COUNT
            assert label == display_label(n + TICKET_COUNT)
            assert label == (n - 1) % 50 + 1

    def test_custom_ticket_count(self):
        assert display_label(11, ticket_count=10) == 1

    @pytest.mark.parametrize("number", [0, -1])
    def test_rejects_non_positive_numbers(self, number):
        with pytest.raises(ValueError):
            display_label(number)


class TestTicketSequencer:

    @pytest.mark.asyncio
    async def test_numbers_increase_per_item_type(self, sequencer):
        apples = [await sequencer.reserve(ItemType.APPLE) for _ in range(3)]
        banana = await sequencer.reserve("banana")

        assert apples == [1, 2, 3]
        assert banana == 1

    @pytest.mark.asyncio
    async def test_concurrent_reservations_are_distinct(self):
        store = InMemoryOrderStore(min_latency=0.0, max_latency=0.005)
        sequencer = TicketSequencer(store)

        async def caller(times):
            return [await sequencer.reserve(ItemType.APPLE) for _ in range(times)]

        per_caller = await asyncio.gather(*(caller(5) for _ in range(8)))
        every = [n for numbers in per_caller for n in numbers]

        assert len(set(every)) == len(every) == 40
        for numbers in per_caller:
            assert numbers == sorted(numbers)

    @pytest.mark.asyncio
    async def test_store_failure_never_fabricates_a_number(self, store, sequencer):
        store.fail_next("next_ticket_number")

        with pytest.raises(SequencerUnavailable):
            await sequencer.reserve(ItemType.APPLE)

        # The failed call consumed nothing
        assert await sequencer.reserve(ItemType.APPLE) == 1

    @pytest.mark.asyncio
    async def test_invalid_store_result_is_rejected(self, store, sequencer, monkeypatch):
        async def broken(item_type):
            return 0

        monkeypatch.setattr(store, "next_ticket_number", broken)

        with pytest.raises(SequencerUnavailable):
            await sequencer.reserve(ItemType.BANANA)

    @pytest.mark.asyncio
    async def test_unknown_item(self, sequencer):
        with pytest.raises(UnknownItem):
            await sequencer.reserve("cherry")
