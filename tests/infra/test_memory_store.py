# tests/infra/test_memory_store.py
"""
Тесты хранилища в памяти.
"""

import pytest

from src.common.constants import TripStatus
from src.core.pairing.models import DriverPairing


class TestTrips:
    """Запросы пассажиров."""

    @pytest.mark.asyncio
    async def test_insert_if_absent_keeps_first(self, repos, sample_trip) -> None:
        first = await repos.trips.insert_if_absent(sample_trip)
        second = await repos.trips.insert_if_absent(sample_trip.model_copy(update={"seats": 2}))

        assert first.seats == second.seats == 1

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, repos, sample_trip) -> None:
        stored = await repos.trips.insert_if_absent(sample_trip)
        stored.seats = 5

        assert (await repos.trips.get_by_id(sample_trip.id)).seats == 1

    @pytest.mark.asyncio
    async def test_claim_is_exclusive_and_idempotent(self, repos, sample_trip) -> None:
        await repos.trips.insert_if_absent(sample_trip)

        first = await repos.trips.claim(sample_trip.id, "rp-1")
        again = await repos.trips.claim(sample_trip.id, "rp-1")
        other = await repos.trips.claim(sample_trip.id, "rp-2")

        assert first.status == TripStatus.BOOKED
        assert again.version == first.version
        assert other is None

    @pytest.mark.asyncio
    async def test_release_only_by_owner(self, repos, sample_trip) -> None:
        await repos.trips.insert_if_absent(sample_trip)
        await repos.trips.claim(sample_trip.id, "rp-1")

        assert await repos.trips.release(sample_trip.id, "rp-2") is False
        assert await repos.trips.release(sample_trip.id, "rp-1") is True

        trip = await repos.trips.get_by_id(sample_trip.id)
        assert trip.status == TripStatus.SEARCHING
        assert trip.confirmed_pairing_id is None

    @pytest.mark.asyncio
    async def test_mark_searching_once(self, repos, sample_trip) -> None:
        await repos.trips.insert_if_absent(sample_trip)

        assert await repos.trips.mark_searching(sample_trip.id) is True
        assert await repos.trips.mark_searching(sample_trip.id) is False
        assert await repos.trips.mark_searching("missing") is False


class TestOffers:
    """Предложения водителей."""

    @pytest.mark.asyncio
    async def test_compare_and_swap_conflict(self, repos, sample_offer) -> None:
        stored = await repos.offers.insert_if_absent(sample_offer)

        updated = await repos.offers.compare_and_swap(stored.with_seat_reserved("rp-1"))
        stale = await repos.offers.compare_and_swap(stored.with_seat_reserved("rp-2"))

        assert updated.version == 1
        assert updated.available_seats == 2
        assert stale is None

    @pytest.mark.asyncio
    async def test_list_open_by_seats(self, repos, offer_factory) -> None:
        small = await repos.offers.insert_if_absent(offer_factory(available_seats=1))
        big = await repos.offers.insert_if_absent(offer_factory(available_seats=4))

        assert {o.id for o in await repos.offers.list_open(1)} == {small.id, big.id}
        assert [o.id for o in await repos.offers.list_open(2)] == [big.id]


class TestPairings:
    """Пары."""

    @pytest.mark.asyncio
    async def test_driver_pairing_unique_per_offer_and_trip(self, repos) -> None:
        pairing = DriverPairing(offered_ride_id="o-1", trip_request_id="t-1", driver_id="d-1", rider_id="r-1")
        duplicate = DriverPairing(offered_ride_id="o-1", trip_request_id="t-1", driver_id="d-1", rider_id="r-1")

        first, created = await repos.driver_pairings.insert_if_absent(pairing)
        second, created_again = await repos.driver_pairings.insert_if_absent(duplicate)

        assert created is True
        assert created_again is False
        assert second.id == first.id == pairing.id
