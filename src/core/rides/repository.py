# src/core/rides/repository.py
"""
Репозитории поездок.
Абстрактные интерфейсы и реализация на PostgreSQL.
Все изменения условные (по статусу или версии записи), поэтому
несколько воркеров могут работать с одними и теми же записями.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Optional

from asyncpg import Record

from src.common.constants import OfferStatus, TripStatus
from src.core.geo import GeoPoint
from src.core.rides.models import OfferedRide, RouteStop, TripRequest, utcnow
from src.infra.database import DatabaseManager


# =============================================================================
# ИНТЕРФЕЙСЫ
# =============================================================================

class TripRequestRepository(ABC):
    """Хранилище запросов пассажиров."""

    @abstractmethod
    async def insert_if_absent(self, trip: TripRequest) -> TripRequest:
        """Сохраняет запрос, если его ещё нет. Возвращает сохранённую версию."""

    @abstractmethod
    async def get_by_id(self, trip_id: str) -> Optional[TripRequest]:
        """Получает запрос по ID."""

    @abstractmethod
    async def list_by_rider(self, rider_id: str) -> list[TripRequest]:
        """Запросы пассажира, новые первыми."""

    @abstractmethod
    async def mark_searching(self, trip_id: str) -> bool:
        """created -> searching. False, если запрос уже не в created."""

    @abstractmethod
    async def claim(self, trip_id: str, pairing_id: str) -> Optional[TripRequest]:
        """
        Бронирует запрос за парой: created/searching -> booked.
        Повторный вызов с той же парой возвращает запись без изменений.
        None, если запрос уже забронирован другой парой (или не найден).
        """

    @abstractmethod
    async def release(self, trip_id: str, pairing_id: str) -> bool:
        """Снимает бронь пары: booked -> searching, только если бронь её."""


class OfferedRideRepository(ABC):
    """Хранилище предложений водителей."""

    @abstractmethod
    async def insert_if_absent(self, offer: OfferedRide) -> OfferedRide:
        """Сохраняет предложение, если его ещё нет. Возвращает сохранённую версию."""

    @abstractmethod
    async def get_by_id(self, offer_id: str) -> Optional[OfferedRide]:
        """Получает предложение по ID."""

    @abstractmethod
    async def list_by_driver(self, driver_id: str) -> list[OfferedRide]:
        """Предложения водителя, новые первыми."""

    @abstractmethod
    async def list_open(self, min_seats: int) -> list[OfferedRide]:
        """Предложения в статусе created с available_seats >= min_seats, новые первыми."""

    @abstractmethod
    async def compare_and_swap(self, offer: OfferedRide) -> Optional[OfferedRide]:
        """
        Записывает предложение, если версия в хранилище равна offer.version.
        Возвращает запись с новой версией или None при конфликте.
        """


# =============================================================================
# POSTGRESQL
# =============================================================================

_TRIP_COLUMNS = """
    id, rider_id, origin_lat, origin_lon, destination_lat, destination_lon,
    departure_time, seats, status, confirmed_pairing_id, version, created_at, updated_at
"""

_OFFER_COLUMNS = """
    id, driver_id, origin_lat, origin_lon, destination_lat, destination_lon,
    stops, departure_time, total_seats, available_seats, status, booked_pairing_ids,
    version, created_at, updated_at
"""


class PgTripRequestRepository(TripRequestRepository):
    """Запросы пассажиров в PostgreSQL."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    async def insert_if_absent(self, trip: TripRequest) -> TripRequest:
        await self._db.execute(
            """
            INSERT INTO trip_requests (
                id, rider_id, origin_lat, origin_lon, destination_lat, destination_lon,
                departure_time, seats, status, confirmed_pairing_id, version, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            ON CONFLICT (id) DO NOTHING
            """,
            trip.id,
            trip.rider_id,
            trip.origin.lat,
            trip.origin.lon,
            trip.destination.lat,
            trip.destination.lon,
            trip.departure_time,
            trip.seats,
            trip.status.value,
            trip.confirmed_pairing_id,
            trip.version,
            trip.created_at,
            trip.updated_at,
        )
        stored = await self.get_by_id(trip.id)
        return stored if stored is not None else trip

    async def get_by_id(self, trip_id: str) -> Optional[TripRequest]:
        row = await self._db.fetchrow(
            f"SELECT {_TRIP_COLUMNS} FROM trip_requests WHERE id = $1",
            trip_id,
        )
        return self._row_to_trip(row) if row else None

    async def list_by_rider(self, rider_id: str) -> list[TripRequest]:
        rows = await self._db.fetch(
            f"SELECT {_TRIP_COLUMNS} FROM trip_requests WHERE rider_id = $1 ORDER BY created_at DESC",
            rider_id,
        )
        return [self._row_to_trip(row) for row in rows]

    async def mark_searching(self, trip_id: str) -> bool:
        status = await self._db.execute(
            """
            UPDATE trip_requests
            SET status = $2, version = version + 1, updated_at = $4
            WHERE id = $1 AND status = $3
            """,
            trip_id,
            TripStatus.SEARCHING.value,
            TripStatus.CREATED.value,
            utcnow(),
        )
        return status.endswith(" 1")

    async def claim(self, trip_id: str, pairing_id: str) -> Optional[TripRequest]:
        row = await self._db.fetchrow(
            f"""
            UPDATE trip_requests
            SET status = $3, confirmed_pairing_id = $2, version = version + 1, updated_at = $6
            WHERE id = $1
              AND (status IN ($4, $5) OR (status = $3 AND confirmed_pairing_id = $2))
            RETURNING {_TRIP_COLUMNS}
            """,
            trip_id,
            pairing_id,
            TripStatus.BOOKED.value,
            TripStatus.CREATED.value,
            TripStatus.SEARCHING.value,
            utcnow(),
        )
        return self._row_to_trip(row) if row else None

    async def release(self, trip_id: str, pairing_id: str) -> bool:
        status = await self._db.execute(
            """
            UPDATE trip_requests
            SET status = $3, confirmed_pairing_id = NULL, version = version + 1, updated_at = $5
            WHERE id = $1 AND status = $4 AND confirmed_pairing_id = $2
            """,
            trip_id,
            pairing_id,
            TripStatus.SEARCHING.value,
            TripStatus.BOOKED.value,
            utcnow(),
        )
        return status.endswith(" 1")

    @staticmethod
    def _row_to_trip(row: Record) -> TripRequest:
        """Преобразует строку БД в модель TripRequest."""
        return TripRequest(
            id=row["id"],
            rider_id=row["rider_id"],
            origin=GeoPoint(lat=row["origin_lat"], lon=row["origin_lon"]),
            destination=GeoPoint(lat=row["destination_lat"], lon=row["destination_lon"]),
            departure_time=row["departure_time"],
            seats=row["seats"],
            status=TripStatus(row["status"]),
            confirmed_pairing_id=row["confirmed_pairing_id"],
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class PgOfferedRideRepository(OfferedRideRepository):
    """Предложения водителей в PostgreSQL."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def insert_if_absent(self, offer: OfferedRide) -> OfferedRide:
        await self._db.execute(
            """
            INSERT INTO offered_rides (
                id, driver_id, origin_lat, origin_lon, destination_lat, destination_lon,
                stops, departure_time, total_seats, available_seats, status, booked_pairing_ids,
                version, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8, $9, $10, $11, $12, $13, $14, $15)
            ON CONFLICT (id) DO NOTHING
            """,
            offer.id,
            offer.driver_id,
            offer.origin.lat,
            offer.origin.lon,
            offer.destination.lat,
            offer.destination.lon,
            self._dump_stops(offer.stops),
            offer.departure_time,
            offer.total_seats,
            offer.available_seats,
            offer.status.value,
            offer.booked_pairing_ids,
            offer.version,
            offer.created_at,
            offer.updated_at,
        )
        stored = await self.get_by_id(offer.id)
        return stored if stored is not None else offer

    async def get_by_id(self, offer_id: str) -> Optional[OfferedRide]:
        row = await self._db.fetchrow(
            f"SELECT {_OFFER_COLUMNS} FROM offered_rides WHERE id = $1",
            offer_id,
        )
        return self._row_to_offer(row) if row else None

    async def list_by_driver(self, driver_id: str) -> list[OfferedRide]:
        rows = await self._db.fetch(
            f"SELECT {_OFFER_COLUMNS} FROM offered_rides WHERE driver_id = $1 ORDER BY created_at DESC",
            driver_id,
        )
        return [self._row_to_offer(row) for row in rows]

    async def list_open(self, min_seats: int) -> list[OfferedRide]:
        rows = await self._db.fetch(
            f"""
            SELECT {_OFFER_COLUMNS}
            FROM offered_rides
            WHERE status = $1 AND available_seats >= $2
            ORDER BY created_at DESC
            """,
            OfferStatus.CREATED.value,
            min_seats,
        )
        return [self._row_to_offer(row) for row in rows]

    async def compare_and_swap(self, offer: OfferedRide) -> Optional[OfferedRide]:
        row = await self._db.fetchrow(
            f"""
            UPDATE offered_rides
            SET available_seats = $3, status = $4, booked_pairing_ids = $5,
                version = version + 1, updated_at = $6
            WHERE id = $1 AND version = $2
            RETURNING {_OFFER_COLUMNS}
            """,
            offer.id,
            offer.version,
            offer.available_seats,
            offer.status.value,
            offer.booked_pairing_ids,
            utcnow(),
        )
        return self._row_to_offer(row) if row else None

    @staticmethod
    def _dump_stops(stops: list[RouteStop]) -> str:
        return json.dumps([stop.model_dump(mode="json") for stop in stops])

    @staticmethod
    def _load_stops(raw: Any) -> list[RouteStop]:
        if raw is None:
            return []
        data = json.loads(raw) if isinstance(raw, str) else raw
        return [RouteStop.model_validate(item) for item in data]

    @classmethod
    def _row_to_offer(cls, row: Record) -> OfferedRide:
        """Преобразует строку БД в модель OfferedRide."""
        return OfferedRide(
            id=row["id"],
            driver_id=row["driver_id"],
            origin=GeoPoint(lat=row["origin_lat"], lon=row["origin_lon"]),
            destination=GeoPoint(lat=row["destination_lat"], lon=row["destination_lon"]),
            stops=cls._load_stops(row["stops"]),
            departure_time=row["departure_time"],
            total_seats=row["total_seats"],
            available_seats=row["available_seats"],
            status=OfferStatus(row["status"]),
            booked_pairing_ids=list(row["booked_pairing_ids"] or []),
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
