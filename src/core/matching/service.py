# src/core/matching/service.py
"""
Сервис подбора предложений водителей под запрос пассажира.

Хранилище отбирает предложения по статусу и числу мест, геометрия
и время проверяются здесь же (Haversine).
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from src.common.constants import TripStatus, TypeMsg
from src.common.logger import log_info
from src.core.geo import GeoPoint, within_radius
from src.core.pairing.models import DriverPairing
from src.core.rides.models import OfferedRide, TripRequest

if TYPE_CHECKING:
    from src.infra.storage import Repositories


def _within_window(moment: datetime, target: datetime, window: timedelta) -> bool:
    return target - window <= moment <= target + window


def is_origin_compatible(offer: OfferedRide, trip: TripRequest, radius_km: float, window: timedelta) -> bool:
    """
    Водитель проезжает рядом с точкой посадки вовремя:
    старт предложения или одна из остановок в радиусе и в окне времени.
    """
    if within_radius(trip.origin, offer.origin, radius_km) and _within_window(
        offer.departure_time, trip.departure_time, window,
    ):
        return True

    return any(
        within_radius(trip.origin, stop.point, radius_km)
        and _within_window(stop.arrival_time, trip.departure_time, window)
        for stop in offer.stops
    )


def is_destination_compatible(offer: OfferedRide, destination: GeoPoint, radius_km: float) -> bool:
    """Финиш предложения или одна из остановок в радиусе от точки назначения."""
    if within_radius(destination, offer.destination, radius_km):
        return True
    return any(within_radius(destination, stop.point, radius_km) for stop in offer.stops)


class MatchingService:
    """
    Сервис матчинга запросов пассажиров с предложениями водителей.

    Реализует:
    - Поиск кандидатов (радиус, окно времени, свободные места)
    - Создание пар для найденных кандидатов
    """

    def __init__(
        self,
        repositories: Repositories,
        radius_km: float | None = None,
        window_minutes: int | None = None,
        max_candidates: int | None = None,
    ) -> None:
        """
        Инициализация сервиса.

        Args:
            repositories: Репозитории хранилища
            radius_km: Радиус поиска в км (из конфига если None)
            window_minutes: Окно времени в минутах (из конфига если None)
            max_candidates: Максимум кандидатов (из конфига если None)
        """
        if radius_km is None or window_minutes is None or max_candidates is None:
            from src.config import settings

            radius_km = settings.matching.MATCH_RADIUS_KM if radius_km is None else radius_km
            window_minutes = (
                settings.matching.MATCH_TIME_WINDOW_MINUTES if window_minutes is None else window_minutes
            )
            max_candidates = settings.matching.MAX_CANDIDATES if max_candidates is None else max_candidates

        self._repos = repositories
        self._radius_km = radius_km
        self._window = timedelta(minutes=window_minutes)
        self._max_candidates = max_candidates

    async def find_candidates(self, trip: TripRequest) -> list[OfferedRide]:
        """
        Ищет подходящие предложения.

        Args:
            trip: Запрос пассажира

        Returns:
            До max_candidates предложений, новые первыми (пустой список - не ошибка)
        """
        offers = await self._repos.offers.list_open(trip.seats)

        candidates: list[OfferedRide] = []
        for offer in offers:
            if not is_origin_compatible(offer, trip, self._radius_km, self._window):
                continue
            if not is_destination_compatible(offer, trip.destination, self._radius_km):
                continue
            candidates.append(offer)

        candidates.sort(key=lambda o: o.created_at, reverse=True)
        return candidates[: self._max_candidates]

    async def match_trip(self, trip: TripRequest) -> list[DriverPairing]:
        """
        Подбирает кандидатов и создаёт по паре на каждого.
        Повторный вызов не создаёт дубликатов.

        Returns:
            Пары запроса (пусто, если кандидатов нет; запрос остаётся created)
        """
        if trip.status not in (TripStatus.CREATED, TripStatus.SEARCHING):
            await log_info(
                f"Запрос {trip.id} в статусе {trip.status.value}, подбор не нужен",
                type_msg=TypeMsg.DEBUG,
            )
            return []

        candidates = await self.find_candidates(trip)
        if not candidates:
            await log_info(f"Для запроса {trip.id} кандидатов не найдено", type_msg=TypeMsg.INFO)
            return []

        await self._repos.trips.mark_searching(trip.id)

        pairings: list[DriverPairing] = []
        created_count = 0
        for offer in candidates:
            pairing, created = await self._repos.driver_pairings.insert_if_absent(
                DriverPairing(
                    offered_ride_id=offer.id,
                    trip_request_id=trip.id,
                    driver_id=offer.driver_id,
                    rider_id=trip.rider_id,
                )
            )
            pairings.append(pairing)
            created_count += int(created)

        await log_info(
            f"Запрос {trip.id}: кандидатов {len(candidates)}, новых пар {created_count}",
            type_msg=TypeMsg.INFO,
        )
        return pairings
