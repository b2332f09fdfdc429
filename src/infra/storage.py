# src/infra/storage.py
"""
Выбор хранилища по DB_BACKEND.
postgres - asyncpg-репозитории, memory - таблицы в памяти процесса.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.common.constants import TypeMsg
from src.common.logger import log_info
from src.core.pairing.repository import (
    DriverPairingRepository,
    PgDriverPairingRepository,
    PgRiderPairingRepository,
    RiderPairingRepository,
)
from src.core.rides.repository import (
    OfferedRideRepository,
    PgOfferedRideRepository,
    PgTripRequestRepository,
    TripRequestRepository,
)
from src.infra.database import DatabaseManager, close_db, get_db, init_db
from src.infra.memory_store import (
    MemoryDriverPairingRepository,
    MemoryOfferedRideRepository,
    MemoryRiderPairingRepository,
    MemoryStore,
    MemoryTripRequestRepository,
)


@dataclass
class Repositories:
    """Набор репозиториев одного хранилища."""
    trips: TripRequestRepository
    offers: OfferedRideRepository
    driver_pairings: DriverPairingRepository
    rider_pairings: RiderPairingRepository


def memory_repositories(store: MemoryStore | None = None) -> Repositories:
    """Репозитории поверх одного MemoryStore."""
    store = store or MemoryStore()
    return Repositories(
        trips=MemoryTripRequestRepository(store),
        offers=MemoryOfferedRideRepository(store),
        driver_pairings=MemoryDriverPairingRepository(store),
        rider_pairings=MemoryRiderPairingRepository(store),
    )


def postgres_repositories(db: DatabaseManager | None = None) -> Repositories:
    """Репозитории поверх пула asyncpg."""
    db = db or get_db()
    return Repositories(
        trips=PgTripRequestRepository(db),
        offers=PgOfferedRideRepository(db),
        driver_pairings=PgDriverPairingRepository(db),
        rider_pairings=PgRiderPairingRepository(db),
    )


# Глобальный экземпляр
_repositories: Repositories | None = None


def get_repositories() -> Repositories:
    """Возвращает репозитории выбранного в конфиге хранилища."""
    global _repositories
    if _repositories is None:
        from src.config import settings

        if settings.database.DB_BACKEND == "memory":
            _repositories = memory_repositories()
        else:
            _repositories = postgres_repositories()
    return _repositories


def set_repositories(repositories: Repositories | None) -> None:
    """Подменяет глобальные репозитории (тесты, встраивание)."""
    global _repositories
    _repositories = repositories


async def init_storage() -> Repositories:
    """Подключает хранилище и применяет схему (для PostgreSQL)."""
    from src.config import settings

    if settings.database.DB_BACKEND == "postgres":
        await init_db()
    else:
        await log_info("Хранилище: память процесса (DB_BACKEND=memory)", type_msg=TypeMsg.WARNING)
    return get_repositories()


async def close_storage() -> None:
    """Закрывает хранилище."""
    from src.config import settings

    if settings.database.DB_BACKEND == "postgres":
        await close_db()


async def storage_health() -> bool:
    """Доступно ли хранилище (память процесса доступна всегда)."""
    from src.config import settings

    if settings.database.DB_BACKEND == "postgres":
        return await get_db().health_check()
    return True
