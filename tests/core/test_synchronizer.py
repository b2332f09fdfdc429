# tests/core/test_synchronizer.py
"""
Тесты синхронизатора пар (src/core/pairing/synchronizer.py).
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.common.constants import (
    AcceptedBy,
    DriverPairingStatus as D,
    OfferStatus,
    RiderPairingStatus as R,
    TripStatus,
)
from src.common.errors import CapacityExhausted, NotFound, TransientDependency, TripAlreadyBooked
from src.core.matching import MatchingService
from src.core.pairing import state_machine as sm
from src.core.pairing.synchronizer import PairingSynchronizer


@pytest.fixture
def sync(repos) -> PairingSynchronizer:
    return PairingSynchronizer(repos, cas_max_attempts=5)


async def _priced_pairing(repos, sync, offer, trip, price: float = 500):
    """Сохраняет предложение и запрос, создаёт пару и цену водителя."""
    await repos.offers.insert_if_absent(offer)
    await repos.trips.insert_if_absent(trip)
    matching = MatchingService(repos, radius_km=10.0, window_minutes=20, max_candidates=10)
    [driver] = [p for p in await matching.match_trip(trip) if p.offered_ride_id == offer.id]
    driver = await sync.update_driver_pairing(driver.id, lambda p: sm.give_starting_price(p, price))
    rider = await sync.ensure_rider_mirror(driver)
    return driver, rider


class TestCompareAndSwap:
    """Условные обновления."""

    @pytest.mark.asyncio
    async def test_version_is_bumped(self, repos, sync, sample_offer, sample_trip) -> None:
        driver, _ = await _priced_pairing(repos, sync, sample_offer, sample_trip)

        assert driver.version == 1
        assert (await repos.driver_pairings.get_by_id(driver.id)).version == 1

    @pytest.mark.asyncio
    async def test_missing_record_is_not_found(self, sync) -> None:
        with pytest.raises(NotFound):
            await sync.update_driver_pairing("missing", lambda p: p)

    @pytest.mark.asyncio
    async def test_apply_returning_none_writes_nothing(self, repos, sync, sample_offer, sample_trip) -> None:
        driver, _ = await _priced_pairing(repos, sync, sample_offer, sample_trip)

        same = await sync.update_driver_pairing(driver.id, lambda p: None)

        assert same.version == driver.version

    @pytest.mark.asyncio
    async def test_retries_exhausted_is_transient(self, repos, sample_offer, sample_trip) -> None:
        sync = PairingSynchronizer(repos, cas_max_attempts=2)
        driver, _ = await _priced_pairing(repos, sync, sample_offer, sample_trip)
        repos.driver_pairings.compare_and_swap = AsyncMock(return_value=None)

        with pytest.raises(TransientDependency):
            await sync.update_driver_pairing(driver.id, lambda p: p.model_copy(update={"can_accept": True}))

        assert repos.driver_pairings.compare_and_swap.await_count == 2


class TestMirrorPushes:
    """Зеркальные изменения."""

    @pytest.mark.asyncio
    async def test_mirror_is_created_once(self, repos, sync, sample_offer, sample_trip) -> None:
        driver, rider = await _priced_pairing(repos, sync, sample_offer, sample_trip)

        again = await sync.ensure_rider_mirror(driver)

        assert again.id == rider.id == driver.mirror_id
        assert len(await repos.rider_pairings.list_by_trip(sample_trip.id)) == 1

    @pytest.mark.asyncio
    async def test_push_negotiation(self, repos, sync, sample_offer, sample_trip) -> None:
        _, rider = await _priced_pairing(repos, sync, sample_offer, sample_trip)
        rider = await sync.update_rider_pairing(rider.id, lambda p: sm.rider_negotiate(p, 400))

        driver = await sync.push_negotiation(rider)

        assert driver.status == D.NEGOTIATED_BY_RIDER
        assert driver.rider_counter_price == 400.0
        # повтор ничего не меняет
        assert (await sync.push_negotiation(rider)).version == driver.version

    @pytest.mark.asyncio
    async def test_push_rider_decline(self, repos, sync, sample_offer, sample_trip) -> None:
        _, rider = await _priced_pairing(repos, sync, sample_offer, sample_trip)
        rider = await sync.update_rider_pairing(rider.id, sm.rider_decline)

        assert (await sync.push_rider_decline(rider)).status == D.DECLINED_BY_RIDER

    @pytest.mark.asyncio
    async def test_push_driver_decline_without_mirror(self, repos, sync, sample_offer, sample_trip) -> None:
        await repos.offers.insert_if_absent(sample_offer)
        await repos.trips.insert_if_absent(sample_trip)
        matching = MatchingService(repos, radius_km=10.0, window_minutes=20, max_candidates=10)
        [driver] = await matching.match_trip(sample_trip)
        driver = await sync.update_driver_pairing(driver.id, sm.driver_decline)

        assert await sync.push_driver_decline(driver) is None

    @pytest.mark.asyncio
    async def test_mirror_of_losing_driver_is_closed(
        self, repos, sync, sample_offer, offer_factory, sample_trip,
    ) -> None:
        """Цена водителя записана, запись пассажира нет, а поездку забрал другой водитель."""
        other_offer = offer_factory(driver_id="driver-2")
        await repos.offers.insert_if_absent(sample_offer)
        await repos.trips.insert_if_absent(sample_trip)
        matching = MatchingService(repos, radius_km=10.0, window_minutes=20, max_candidates=10)
        [driver_a] = await matching.match_trip(sample_trip)
        driver_a = await sync.update_driver_pairing(driver_a.id, lambda p: sm.give_starting_price(p, 500))
        driver_b, rider_b = await _priced_pairing(repos, sync, other_offer, sample_trip, price=450)
        await sync.finalize(driver_b, sm.rider_accept(rider_b), AcceptedBy.RIDER)

        driver_a = await repos.driver_pairings.get_by_id(driver_a.id)
        assert driver_a.status == D.OTHER_DRIVER_ACCEPTED

        mirror = await sync.ensure_rider_mirror(driver_a)

        assert mirror.status == R.OTHER_REQUEST_ACCEPTED
        assert not (mirror.can_accept or mirror.can_decline or mirror.can_negotiate)

    @pytest.mark.asyncio
    async def test_mirror_inserted_after_booking_is_closed(self, repos, sync, sample_offer, sample_trip) -> None:
        """Запрос забронирован другой парой между ценой водителя и вставкой записи пассажира."""
        await repos.offers.insert_if_absent(sample_offer)
        await repos.trips.insert_if_absent(sample_trip)
        matching = MatchingService(repos, radius_km=10.0, window_minutes=20, max_candidates=10)
        [driver] = await matching.match_trip(sample_trip)
        driver = await sync.update_driver_pairing(driver.id, lambda p: sm.give_starting_price(p, 500))
        await repos.trips.claim(sample_trip.id, "rider-pairing-of-other-driver")

        mirror = await sync.ensure_rider_mirror(driver)

        assert mirror.status == R.OTHER_REQUEST_ACCEPTED
        assert (await repos.rider_pairings.get_by_id(mirror.id)).status == R.OTHER_REQUEST_ACCEPTED


class TestFinalize:
    """Финализация сделки."""

    @pytest.mark.asyncio
    async def test_rider_accepts(self, repos, sync, sample_offer, sample_trip) -> None:
        driver, rider = await _priced_pairing(repos, sync, sample_offer, sample_trip)

        driver_final, rider_final = await sync.finalize(driver, sm.rider_accept(rider), AcceptedBy.RIDER)

        assert driver_final.status == D.ACCEPTED_BY_RIDER
        assert rider_final.status == R.ACCEPTED_BY_RIDER
        assert driver_final.accepted_price == rider_final.accepted_price == 500.0

        trip = await repos.trips.get_by_id(sample_trip.id)
        assert trip.status == TripStatus.BOOKED
        assert trip.confirmed_pairing_id == rider.id

        offer = await repos.offers.get_by_id(sample_offer.id)
        assert offer.available_seats == 2
        assert offer.booked_pairing_ids == [rider.id]

    @pytest.mark.asyncio
    async def test_replay_is_idempotent(self, repos, sync, sample_offer, sample_trip) -> None:
        """Повтор finalize не занимает второе место."""
        driver, rider = await _priced_pairing(repos, sync, sample_offer, sample_trip)
        accepted = sm.rider_accept(rider)

        first = await sync.finalize(driver, accepted, AcceptedBy.RIDER)
        second = await sync.finalize(driver, accepted, AcceptedBy.RIDER)

        assert first[1].version == second[1].version
        assert (await repos.offers.get_by_id(sample_offer.id)).available_seats == 2

    @pytest.mark.asyncio
    async def test_second_pairing_gets_trip_already_booked(
        self, repos, sync, sample_offer, offer_factory, sample_trip,
    ) -> None:
        other_offer = offer_factory(driver_id="driver-2")
        driver_a, rider_a = await _priced_pairing(repos, sync, sample_offer, sample_trip)
        driver_b, rider_b = await _priced_pairing(repos, sync, other_offer, sample_trip, price=450)

        await sync.finalize(driver_a, sm.rider_accept(rider_a), AcceptedBy.RIDER)

        with pytest.raises(TripAlreadyBooked):
            await sync.finalize(driver_b, sm.rider_accept(rider_b), AcceptedBy.RIDER)
        assert (await repos.offers.get_by_id(other_offer.id)).available_seats == 3

    @pytest.mark.asyncio
    async def test_siblings_are_invalidated(self, repos, sync, sample_offer, offer_factory, sample_trip) -> None:
        other_offer = offer_factory(driver_id="driver-2")
        third_offer = offer_factory(driver_id="driver-3")
        driver_a, rider_a = await _priced_pairing(repos, sync, sample_offer, sample_trip)
        driver_b, rider_b = await _priced_pairing(repos, sync, other_offer, sample_trip, price=450)
        await repos.offers.insert_if_absent(third_offer)
        await MatchingService(repos, radius_km=10.0, window_minutes=20, max_candidates=10).match_trip(
            await repos.trips.get_by_id(sample_trip.id),
        )

        await sync.finalize(driver_a, sm.rider_accept(rider_a), AcceptedBy.RIDER)

        statuses = {p.offered_ride_id: p.status for p in await repos.driver_pairings.list_by_trip(sample_trip.id)}
        assert statuses[sample_offer.id] == D.ACCEPTED_BY_RIDER
        assert statuses[other_offer.id] == D.OTHER_DRIVER_ACCEPTED
        assert statuses[third_offer.id] == D.OTHER_DRIVER_ACCEPTED
        assert (await repos.rider_pairings.get_by_id(rider_b.id)).status == R.OTHER_REQUEST_ACCEPTED

    @pytest.mark.asyncio
    async def test_no_seats_left(self, repos, sync, offer_factory, sample_trip) -> None:
        offer = offer_factory(available_seats=1)
        driver, rider = await _priced_pairing(repos, sync, offer, sample_trip)
        stored = await repos.offers.get_by_id(offer.id)
        await repos.offers.compare_and_swap(stored.model_copy(update={"available_seats": 0, "status": OfferStatus.FULL}))

        with pytest.raises(CapacityExhausted):
            await sync.finalize(driver, sm.rider_accept(rider), AcceptedBy.RIDER)

        assert (await repos.trips.get_by_id(sample_trip.id)).status == TripStatus.SEARCHING
        assert (await repos.rider_pairings.get_by_id(rider.id)).status == R.AWAITING_RIDER_RESPONSE

    @pytest.mark.asyncio
    async def test_seat_taken_after_claim_releases_trip(self, repos, sync, offer_factory, sample_trip) -> None:
        """Место ушло между проверкой и CAS: бронь запроса снимается."""
        offer = offer_factory(available_seats=1)
        driver, rider = await _priced_pairing(repos, sync, offer, sample_trip)
        original_claim = repos.trips.claim

        async def claim_and_steal_seat(trip_id, pairing_id):
            claimed = await original_claim(trip_id, pairing_id)
            stored = await repos.offers.get_by_id(offer.id)
            await repos.offers.compare_and_swap(stored.with_seat_reserved("someone-else"))
            return claimed

        repos.trips.claim = claim_and_steal_seat

        with pytest.raises(CapacityExhausted):
            await sync.finalize(driver, sm.rider_accept(rider), AcceptedBy.RIDER)

        trip = await repos.trips.get_by_id(sample_trip.id)
        assert trip.status == TripStatus.SEARCHING
        assert trip.confirmed_pairing_id is None


class TestConcurrentAccepts:
    """Одновременные подтверждения."""

    @pytest.mark.asyncio
    async def test_exactly_one_winner_per_trip(self, repos, sync, offer_factory, sample_trip) -> None:
        pairs = []
        for n in range(4):
            pairs.append(await _priced_pairing(repos, sync, offer_factory(driver_id=f"driver-{n}"), sample_trip))

        results = await asyncio.gather(
            *(sync.finalize(d, sm.rider_accept(r), AcceptedBy.RIDER) for d, r in pairs),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(e, TripAlreadyBooked) for e in losers)

        offers = [await repos.offers.get_by_id(d.offered_ride_id) for d, _ in pairs]
        assert sum(3 - o.available_seats for o in offers) == 1
        trip = await repos.trips.get_by_id(sample_trip.id)
        assert trip.confirmed_pairing_id == winners[0][1].id

    @pytest.mark.asyncio
    async def test_no_oversell_across_trips(self, repos, sync, offer_factory, trip_factory) -> None:
        """Два пассажира на последнее место: место получает один."""
        offer = offer_factory(available_seats=1)
        pair_a = await _priced_pairing(repos, sync, offer, trip_factory(rider_id="rider-a"))
        pair_b = await _priced_pairing(repos, sync, offer, trip_factory(rider_id="rider-b"))

        results = await asyncio.gather(
            *(sync.finalize(d, sm.rider_accept(r), AcceptedBy.RIDER) for d, r in (pair_a, pair_b)),
            return_exceptions=True,
        )

        assert sum(not isinstance(r, Exception) for r in results) == 1
        assert any(isinstance(r, CapacityExhausted) for r in results)
        stored = await repos.offers.get_by_id(offer.id)
        assert stored.available_seats == 0
        assert stored.status == OfferStatus.FULL
