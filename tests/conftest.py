# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_BACKEND", "memory")
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("COMPONENT_MODE", "all")

from src.core.geo import GeoPoint
from src.core.rides.models import OfferedRide, TripRequest
from src.infra.memory_store import MemoryStore
from src.infra.storage import Repositories, memory_repositories

# Время отправления из сценариев
DEPARTURE = datetime(2030, 5, 17, 10, 0, tzinfo=timezone.utc)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "ride_match_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "API_HOST": "127.0.0.1",
        "API_PORT": 9000,
        "LOG_LEVEL": "DEBUG",
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "colored",
        "DB_BACKEND": "memory",
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "ride_match_test",
        "DB_USER": "postgres",
        "DB_PASSWORD": "test_password",
        "RABBITMQ_HOST": "localhost",
        "RABBITMQ_PORT": 5672,
        "RABBITMQ_USER": "guest",
        "RABBITMQ_PASSWORD": "guest",
        "RABBITMQ_VHOST": "/",
        "RABBITMQ_QUEUE": "ride_match.test",
        "MATCH_RADIUS_KM": 5.0,
        "MATCH_TIME_WINDOW_MINUTES": 15,
        "MAX_CANDIDATES": 3,
        "INTAKE_BATCH_SIZE": 4,
        "INTAKE_REQUEUE_DELAY_SECONDS": 2.5,
        "CAS_MAX_ATTEMPTS": 7,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ
# =============================================================================

@pytest.fixture
def store() -> MemoryStore:
    """Пустое хранилище в памяти."""
    return MemoryStore()


@pytest.fixture
def repos(store: MemoryStore) -> Repositories:
    """Репозитории поверх хранилища в памяти."""
    return memory_repositories(store)


@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="INSERT 0 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_event_queue() -> AsyncMock:
    """Мок очереди событий."""
    queue = AsyncMock()
    queue.receive = AsyncMock(return_value=[])
    queue.publish = AsyncMock(return_value=None)
    queue.ack = AsyncMock(return_value=None)
    queue.reject = AsyncMock(return_value=None)
    queue.is_connected = True
    return queue


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

def make_offer(**overrides: Any) -> OfferedRide:
    """Предложение (0,0) -> (1,1), 10:00, 3 места."""
    data: dict[str, Any] = {
        "driver_id": "driver-1",
        "origin": GeoPoint(lat=0.0, lon=0.0),
        "destination": GeoPoint(lat=1.0, lon=1.0),
        "departure_time": DEPARTURE,
        "available_seats": 3,
    }
    data.update(overrides)
    return OfferedRide(**data)


def make_trip(**overrides: Any) -> TripRequest:
    """Запрос (0.01,0.01) -> (1.01,1.01), 10:10, 1 место."""
    data: dict[str, Any] = {
        "rider_id": "rider-1",
        "origin": GeoPoint(lat=0.01, lon=0.01),
        "destination": GeoPoint(lat=1.01, lon=1.01),
        "departure_time": DEPARTURE.replace(minute=10),
        "seats": 1,
    }
    data.update(overrides)
    return TripRequest(**data)


@pytest.fixture
def sample_offer() -> OfferedRide:
    return make_offer()


@pytest.fixture
def sample_trip() -> TripRequest:
    return make_trip()


@pytest.fixture
def sample_trip_payload() -> dict[str, Any]:
    """Запрос пассажира в формате события."""
    return {
        "_id": "trip-evt-1",
        "riderId": "rider-1",
        "from": {"type": "Point", "coordinates": [0.01, 0.01]},
        "to": {"type": "Point", "coordinates": [1.01, 1.01]},
        "departing": "2030-05-17T10:10:00Z",
        "seats": 1,
    }


@pytest.fixture
def sample_offer_payload() -> dict[str, Any]:
    """Предложение водителя в формате события."""
    return {
        "_id": "offer-evt-1",
        "driverId": "driver-1",
        "origin": {"lat": 0.0, "lon": 0.0},
        "destination": {"lat": 1.0, "lon": 1.0},
        "leaving": "2030-05-17T10:00:00Z",
        "availableSeats": 3,
        "stops": [
            {"coordinates": [0.5, 0.5], "arrivalTime": "2030-05-17T10:30:00Z"},
        ],
    }


@pytest.fixture
def offer_factory():
    """Фабрика предложений с переопределением полей."""
    return make_offer


@pytest.fixture
def trip_factory():
    """Фабрика запросов с переопределением полей."""
    return make_trip
