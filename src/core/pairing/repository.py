# src/core/pairing/repository.py
"""
Репозитории пар.
Абстрактные интерфейсы и реализация на PostgreSQL.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from asyncpg import Record

from src.common.constants import DriverPairingStatus, RiderPairingStatus
from src.core.pairing.models import DriverPairing, RiderPairing
from src.core.rides.models import utcnow
from src.infra.database import DatabaseManager


# =============================================================================
# ИНТЕРФЕЙСЫ
# =============================================================================

class DriverPairingRepository(ABC):
    """Хранилище пар глазами водителя."""

    @abstractmethod
    async def insert_if_absent(self, pairing: DriverPairing) -> tuple[DriverPairing, bool]:
        """
        Создаёт пару, если для (offered_ride_id, trip_request_id) её ещё нет.

        Returns:
            (сохранённая пара, создана ли она этим вызовом)
        """

    @abstractmethod
    async def get_by_id(self, pairing_id: str) -> Optional[DriverPairing]:
        """Получает пару по ID."""

    @abstractmethod
    async def list_by_trip(self, trip_request_id: str) -> list[DriverPairing]:
        """Все пары запроса пассажира."""

    @abstractmethod
    async def list_by_driver(self, driver_id: str) -> list[DriverPairing]:
        """Пары водителя, новые первыми."""

    @abstractmethod
    async def compare_and_swap(self, pairing: DriverPairing) -> Optional[DriverPairing]:
        """Записывает пару, если версия не изменилась. None при конфликте."""


class RiderPairingRepository(ABC):
    """Хранилище пар глазами пассажира."""

    @abstractmethod
    async def insert_if_absent(self, pairing: RiderPairing) -> tuple[RiderPairing, bool]:
        """Создаёт пару, если записи с таким ID ещё нет."""

    @abstractmethod
    async def get_by_id(self, pairing_id: str) -> Optional[RiderPairing]:
        """Получает пару по ID."""

    @abstractmethod
    async def list_by_trip(self, trip_request_id: str) -> list[RiderPairing]:
        """Все пары запроса пассажира."""

    @abstractmethod
    async def list_by_rider(self, rider_id: str) -> list[RiderPairing]:
        """Пары пассажира, новые первыми."""

    @abstractmethod
    async def compare_and_swap(self, pairing: RiderPairing) -> Optional[RiderPairing]:
        """Записывает пару, если версия не изменилась. None при конфликте."""


# =============================================================================
# POSTGRESQL
# =============================================================================

_DRIVER_COLUMNS = """
    id, offered_ride_id, trip_request_id, driver_id, rider_id, mirror_id, status,
    driver_starting_price, rider_counter_price, accepted_price,
    can_accept, can_decline, should_give_price, version, created_at, updated_at
"""

_RIDER_COLUMNS = """
    id, trip_request_id, offered_ride_id, rider_id, driver_id, mirror_id, status,
    price_offered, counter_price, accepted_price,
    can_accept, can_decline, can_negotiate, version, created_at, updated_at
"""


class PgDriverPairingRepository(DriverPairingRepository):
    """Пары водителя в PostgreSQL."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def insert_if_absent(self, pairing: DriverPairing) -> tuple[DriverPairing, bool]:
        row = await self._db.fetchrow(
            f"""
            INSERT INTO driver_pairings (
                id, offered_ride_id, trip_request_id, driver_id, rider_id, mirror_id, status,
                driver_starting_price, rider_counter_price, accepted_price,
                can_accept, can_decline, should_give_price, version, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16)
            ON CONFLICT (offered_ride_id, trip_request_id) DO NOTHING
            RETURNING {_DRIVER_COLUMNS}
            """,
            pairing.id,
            pairing.offered_ride_id,
            pairing.trip_request_id,
            pairing.driver_id,
            pairing.rider_id,
            pairing.mirror_id,
            pairing.status.value,
            pairing.driver_starting_price,
            pairing.rider_counter_price,
            pairing.accepted_price,
            pairing.can_accept,
            pairing.can_decline,
            pairing.should_give_price,
            pairing.version,
            pairing.created_at,
            pairing.updated_at,
        )
        if row is not None:
            return self._row_to_pairing(row), True

        existing = await self._db.fetchrow(
            f"""
            SELECT {_DRIVER_COLUMNS} FROM driver_pairings
            WHERE offered_ride_id = $1 AND trip_request_id = $2
            """,
            pairing.offered_ride_id,
            pairing.trip_request_id,
        )
        return (self._row_to_pairing(existing) if existing else pairing), False

    async def get_by_id(self, pairing_id: str) -> Optional[DriverPairing]:
        row = await self._db.fetchrow(
            f"SELECT {_DRIVER_COLUMNS} FROM driver_pairings WHERE id = $1",
            pairing_id,
        )
        return self._row_to_pairing(row) if row else None

    async def list_by_trip(self, trip_request_id: str) -> list[DriverPairing]:
        rows = await self._db.fetch(
            f"SELECT {_DRIVER_COLUMNS} FROM driver_pairings WHERE trip_request_id = $1 ORDER BY created_at DESC",
            trip_request_id,
        )
        return [self._row_to_pairing(row) for row in rows]

    async def list_by_driver(self, driver_id: str) -> list[DriverPairing]:
        rows = await self._db.fetch(
            f"SELECT {_DRIVER_COLUMNS} FROM driver_pairings WHERE driver_id = $1 ORDER BY created_at DESC",
            driver_id,
        )
        return [self._row_to_pairing(row) for row in rows]

    async def compare_and_swap(self, pairing: DriverPairing) -> Optional[DriverPairing]:
        row = await self._db.fetchrow(
            f"""
            UPDATE driver_pairings
            SET mirror_id = $3, status = $4,
                driver_starting_price = $5, rider_counter_price = $6, accepted_price = $7,
                can_accept = $8, can_decline = $9, should_give_price = $10,
                version = version + 1, updated_at = $11
            WHERE id = $1 AND version = $2
            RETURNING {_DRIVER_COLUMNS}
            """,
            pairing.id,
            pairing.version,
            pairing.mirror_id,
            pairing.status.value,
            pairing.driver_starting_price,
            pairing.rider_counter_price,
            pairing.accepted_price,
            pairing.can_accept,
            pairing.can_decline,
            pairing.should_give_price,
            utcnow(),
        )
        return self._row_to_pairing(row) if row else None

    @staticmethod
    def _row_to_pairing(row: Record) -> DriverPairing:
        """Преобразует строку БД в модель DriverPairing."""
        return DriverPairing(
            id=row["id"],
            offered_ride_id=row["offered_ride_id"],
            trip_request_id=row["trip_request_id"],
            driver_id=row["driver_id"],
            rider_id=row["rider_id"],
            mirror_id=row["mirror_id"],
            status=DriverPairingStatus(row["status"]),
            driver_starting_price=row["driver_starting_price"],
            rider_counter_price=row["rider_counter_price"],
            accepted_price=row["accepted_price"],
            can_accept=row["can_accept"],
            can_decline=row["can_decline"],
            should_give_price=row["should_give_price"],
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class PgRiderPairingRepository(RiderPairingRepository):
    """Пары пассажира в PostgreSQL."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def insert_if_absent(self, pairing: RiderPairing) -> tuple[RiderPairing, bool]:
        row = await self._db.fetchrow(
            f"""
            INSERT INTO rider_pairings (
                id, trip_request_id, offered_ride_id, rider_id, driver_id, mirror_id, status,
                price_offered, counter_price, accepted_price,
                can_accept, can_decline, can_negotiate, version, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16)
            ON CONFLICT (id) DO NOTHING
            RETURNING {_RIDER_COLUMNS}
            """,
            pairing.id,
            pairing.trip_request_id,
            pairing.offered_ride_id,
            pairing.rider_id,
            pairing.driver_id,
            pairing.mirror_id,
            pairing.status.value,
            pairing.price_offered,
            pairing.counter_price,
            pairing.accepted_price,
            pairing.can_accept,
            pairing.can_decline,
            pairing.can_negotiate,
            pairing.version,
            pairing.created_at,
            pairing.updated_at,
        )
        if row is not None:
            return self._row_to_pairing(row), True

        existing = await self.get_by_id(pairing.id)
        return (existing or pairing), False

    async def get_by_id(self, pairing_id: str) -> Optional[RiderPairing]:
        row = await self._db.fetchrow(
            f"SELECT {_RIDER_COLUMNS} FROM rider_pairings WHERE id = $1",
            pairing_id,
        )
        return self._row_to_pairing(row) if row else None

    async def list_by_trip(self, trip_request_id: str) -> list[RiderPairing]:
        rows = await self._db.fetch(
            f"SELECT {_RIDER_COLUMNS} FROM rider_pairings WHERE trip_request_id = $1 ORDER BY created_at DESC",
            trip_request_id,
        )
        return [self._row_to_pairing(row) for row in rows]

    async def list_by_rider(self, rider_id: str) -> list[RiderPairing]:
        rows = await self._db.fetch(
            f"SELECT {_RIDER_COLUMNS} FROM rider_pairings WHERE rider_id = $1 ORDER BY created_at DESC",
            rider_id,
        )
        return [self._row_to_pairing(row) for row in rows]

    async def compare_and_swap(self, pairing: RiderPairing) -> Optional[RiderPairing]:
        row = await self._db.fetchrow(
            f"""
            UPDATE rider_pairings
            SET status = $3, counter_price = $4, accepted_price = $5,
                can_accept = $6, can_decline = $7, can_negotiate = $8,
                version = version + 1, updated_at = $9
            WHERE id = $1 AND version = $2
            RETURNING {_RIDER_COLUMNS}
            """,
            pairing.id,
            pairing.version,
            pairing.status.value,
            pairing.counter_price,
            pairing.accepted_price,
            pairing.can_accept,
            pairing.can_decline,
            pairing.can_negotiate,
            utcnow(),
        )
        return self._row_to_pairing(row) if row else None

    @staticmethod
    def _row_to_pairing(row: Record) -> RiderPairing:
        """Преобразует строку БД в модель RiderPairing."""
        return RiderPairing(
            id=row["id"],
            trip_request_id=row["trip_request_id"],
            offered_ride_id=row["offered_ride_id"],
            rider_id=row["rider_id"],
            driver_id=row["driver_id"],
            mirror_id=row["mirror_id"],
            status=RiderPairingStatus(row["status"]),
            price_offered=row["price_offered"],
            counter_price=row["counter_price"],
            accepted_price=row["accepted_price"],
            can_accept=row["can_accept"],
            can_decline=row["can_decline"],
            can_negotiate=row["can_negotiate"],
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
