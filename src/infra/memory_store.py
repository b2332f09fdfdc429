# src/infra/memory_store.py
"""
Хранилище в памяти процесса (DB_BACKEND=memory).
Используется в режиме разработки и в тестах. Условные обновления
выполняются под asyncio.Lock и ведут себя так же, как в PostgreSQL.
"""

from __future__ import annotations

import asyncio
from typing import Optional, TypeVar

from pydantic import BaseModel

from src.common.constants import OfferStatus, TripStatus
from src.core.pairing.models import DriverPairing, RiderPairing
from src.core.pairing.repository import DriverPairingRepository, RiderPairingRepository
from src.core.rides.models import OfferedRide, TripRequest, utcnow
from src.core.rides.repository import OfferedRideRepository, TripRequestRepository

M = TypeVar("M", bound=BaseModel)


def _copy(record: M) -> M:
    return record.model_copy(deep=True)


def _newest_first(records: list[M]) -> list[M]:
    return sorted(records, key=lambda r: r.created_at, reverse=True)  # type: ignore[attr-defined]


class MemoryStore:
    """Общие таблицы и блокировка для всех репозиториев в памяти."""

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.trips: dict[str, TripRequest] = {}
        self.offers: dict[str, OfferedRide] = {}
        self.driver_pairings: dict[str, DriverPairing] = {}
        self.rider_pairings: dict[str, RiderPairing] = {}

    def clear(self) -> None:
        self.trips.clear()
        self.offers.clear()
        self.driver_pairings.clear()
        self.rider_pairings.clear()


def _cas(table: dict[str, M], record: M) -> Optional[M]:
    """Записывает record, если версия в таблице совпадает. Вызывается под блокировкой."""
    current = table.get(record.id)  # type: ignore[attr-defined]
    if current is None or current.version != record.version:  # type: ignore[attr-defined]
        return None
    stored = record.model_copy(update={"version": record.version + 1, "updated_at": utcnow()})  # type: ignore[attr-defined]
    table[stored.id] = stored  # type: ignore[attr-defined]
    return _copy(stored)


class MemoryTripRequestRepository(TripRequestRepository):
    """Запросы пассажиров в памяти."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def insert_if_absent(self, trip: TripRequest) -> TripRequest:
        async with self._store.lock:
            stored = self._store.trips.setdefault(trip.id, _copy(trip))
            return _copy(stored)

    async def get_by_id(self, trip_id: str) -> Optional[TripRequest]:
        trip = self._store.trips.get(trip_id)
        return _copy(trip) if trip else None

    async def list_by_rider(self, rider_id: str) -> list[TripRequest]:
        trips = [_copy(t) for t in self._store.trips.values() if t.rider_id == rider_id]
        return _newest_first(trips)

    async def mark_searching(self, trip_id: str) -> bool:
        async with self._store.lock:
            trip = self._store.trips.get(trip_id)
            if trip is None or trip.status != TripStatus.CREATED:
                return False
            _cas(self._store.trips, trip.model_copy(update={"status": TripStatus.SEARCHING}))
            return True

    async def claim(self, trip_id: str, pairing_id: str) -> Optional[TripRequest]:
        async with self._store.lock:
            trip = self._store.trips.get(trip_id)
            if trip is None:
                return None
            if trip.status == TripStatus.BOOKED and trip.confirmed_pairing_id == pairing_id:
                return _copy(trip)
            if not trip.is_open:
                return None
            return _cas(
                self._store.trips,
                trip.model_copy(update={"status": TripStatus.BOOKED, "confirmed_pairing_id": pairing_id}),
            )

    async def release(self, trip_id: str, pairing_id: str) -> bool:
        async with self._store.lock:
            trip = self._store.trips.get(trip_id)
            if trip is None or trip.status != TripStatus.BOOKED or trip.confirmed_pairing_id != pairing_id:
                return False
            _cas(
                self._store.trips,
                trip.model_copy(update={"status": TripStatus.SEARCHING, "confirmed_pairing_id": None}),
            )
            return True


class MemoryOfferedRideRepository(OfferedRideRepository):
    """Предложения водителей в памяти."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def insert_if_absent(self, offer: OfferedRide) -> OfferedRide:
        async with self._store.lock:
            stored = self._store.offers.setdefault(offer.id, _copy(offer))
            return _copy(stored)

    async def get_by_id(self, offer_id: str) -> Optional[OfferedRide]:
        offer = self._store.offers.get(offer_id)
        return _copy(offer) if offer else None

    async def list_by_driver(self, driver_id: str) -> list[OfferedRide]:
        offers = [_copy(o) for o in self._store.offers.values() if o.driver_id == driver_id]
        return _newest_first(offers)

    async def list_open(self, min_seats: int) -> list[OfferedRide]:
        offers = [
            _copy(o)
            for o in self._store.offers.values()
            if o.status == OfferStatus.CREATED and o.available_seats >= min_seats
        ]
        return _newest_first(offers)

    async def compare_and_swap(self, offer: OfferedRide) -> Optional[OfferedRide]:
        async with self._store.lock:
            return _cas(self._store.offers, offer)


class MemoryDriverPairingRepository(DriverPairingRepository):
    """Пары водителя в памяти."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def insert_if_absent(self, pairing: DriverPairing) -> tuple[DriverPairing, bool]:
        async with self._store.lock:
            for existing in self._store.driver_pairings.values():
                if (existing.offered_ride_id, existing.trip_request_id) == (
                    pairing.offered_ride_id, pairing.trip_request_id,
                ):
                    return _copy(existing), False
            self._store.driver_pairings[pairing.id] = _copy(pairing)
            return _copy(pairing), True

    async def get_by_id(self, pairing_id: str) -> Optional[DriverPairing]:
        pairing = self._store.driver_pairings.get(pairing_id)
        return _copy(pairing) if pairing else None

    async def list_by_trip(self, trip_request_id: str) -> list[DriverPairing]:
        pairings = [_copy(p) for p in self._store.driver_pairings.values() if p.trip_request_id == trip_request_id]
        return _newest_first(pairings)

    async def list_by_driver(self, driver_id: str) -> list[DriverPairing]:
        pairings = [_copy(p) for p in self._store.driver_pairings.values() if p.driver_id == driver_id]
        return _newest_first(pairings)

    async def compare_and_swap(self, pairing: DriverPairing) -> Optional[DriverPairing]:
        async with self._store.lock:
            return _cas(self._store.driver_pairings, pairing)


class MemoryRiderPairingRepository(RiderPairingRepository):
    """Пары пассажира в памяти."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def insert_if_absent(self, pairing: RiderPairing) -> tuple[RiderPairing, bool]:
        async with self._store.lock:
            existing = self._store.rider_pairings.get(pairing.id)
            if existing is not None:
                return _copy(existing), False
            self._store.rider_pairings[pairing.id] = _copy(pairing)
            return _copy(pairing), True

    async def get_by_id(self, pairing_id: str) -> Optional[RiderPairing]:
        pairing = self._store.rider_pairings.get(pairing_id)
        return _copy(pairing) if pairing else None

    async def list_by_trip(self, trip_request_id: str) -> list[RiderPairing]:
        pairings = [_copy(p) for p in self._store.rider_pairings.values() if p.trip_request_id == trip_request_id]
        return _newest_first(pairings)

    async def list_by_rider(self, rider_id: str) -> list[RiderPairing]:
        pairings = [_copy(p) for p in self._store.rider_pairings.values() if p.rider_id == rider_id]
        return _newest_first(pairings)

    async def compare_and_swap(self, pairing: RiderPairing) -> Optional[RiderPairing]:
        async with self._store.lock:
            return _cas(self._store.rider_pairings, pairing)
