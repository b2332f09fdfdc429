# src/core/pairing/synchronizer.py
"""
Согласование записей водителя и пассажира.

Все записи меняются через compare-and-swap по версии; каждый шаг
идемпотентен, поэтому повтор после частичного сбоя сходится к тому же
итоговому состоянию. Точка линеаризации сделки - бронь запроса пассажира
(claim): первая подтвердившая пара выигрывает.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel

from src.common.constants import (
    AcceptedBy,
    DriverPairingStatus,
    RiderPairingStatus,
    TripStatus,
    TypeMsg,
)
from src.common.errors import (
    CapacityExhausted,
    InvalidTransition,
    NotFound,
    TransientDependency,
    TripAlreadyBooked,
)
from src.common.logger import log_info, log_warning
from src.core.pairing import state_machine as sm
from src.core.pairing.models import DriverPairing, RiderPairing
from src.core.rides.models import OfferedRide

if TYPE_CHECKING:
    from src.infra.storage import Repositories

M = TypeVar("M", bound=BaseModel)

# apply(current) -> новая версия записи или None, если менять нечего
Apply = Callable[[M], Optional[M]]


class _SeatsGone(Exception):
    """Места закончились между предварительной проверкой и CAS."""


class PairingSynchronizer:
    """
    Синхронизатор пар.

    Реализует:
    - Условные обновления записей с повтором при конфликте версий
    - Зеркальные изменения между сторонами пары
    - Финализацию сделки: бронь запроса, место, ACCEPTED_*, инвалидация соседей
    """

    def __init__(self, repositories: Repositories, cas_max_attempts: int | None = None) -> None:
        """
        Args:
            repositories: Репозитории хранилища
            cas_max_attempts: Сколько раз повторять CAS при конфликте (из конфига если None)
        """
        if cas_max_attempts is None:
            from src.config import settings
            cas_max_attempts = settings.intake.CAS_MAX_ATTEMPTS

        self._repos = repositories
        self._cas_max_attempts = max(1, cas_max_attempts)

    # =========================================================================
    # CAS
    # =========================================================================

    async def _update(
        self,
        entity: str,
        entity_id: str,
        load: Callable[[], Awaitable[Optional[M]]],
        save: Callable[[M], Awaitable[Optional[M]]],
        apply: Apply,
    ) -> M:
        """
        Читает запись, применяет apply и записывает по версии.
        При конфликте перечитывает и повторяет.
        """
        for _ in range(self._cas_max_attempts):
            current = await load()
            if current is None:
                raise NotFound(entity, entity_id)

            updated = apply(current)
            if updated is None:
                return current

            stored = await save(updated)
            if stored is not None:
                return stored

            await log_info(f"Конфликт версий {entity} {entity_id}, повтор", type_msg=TypeMsg.DEBUG)

        raise TransientDependency(f"Too many concurrent updates of {entity} {entity_id}")

    async def update_driver_pairing(self, pairing_id: str, apply: Apply) -> DriverPairing:
        repo = self._repos.driver_pairings
        return await self._update(
            "DriverPairing",
            pairing_id,
            lambda: repo.get_by_id(pairing_id),
            repo.compare_and_swap,
            apply,
        )

    async def update_rider_pairing(self, pairing_id: str, apply: Apply) -> RiderPairing:
        repo = self._repos.rider_pairings
        return await self._update(
            "RiderPairing",
            pairing_id,
            lambda: repo.get_by_id(pairing_id),
            repo.compare_and_swap,
            apply,
        )

    async def _update_offer(self, offer_id: str, apply: Apply) -> OfferedRide:
        repo = self._repos.offers
        return await self._update(
            "OfferedRide",
            offer_id,
            lambda: repo.get_by_id(offer_id),
            repo.compare_and_swap,
            apply,
        )

    # =========================================================================
    # ЗЕРКАЛЬНЫЕ ИЗМЕНЕНИЯ
    # =========================================================================

    async def ensure_rider_mirror(self, driver: DriverPairing) -> RiderPairing:
        """
        Создаёт запись пассажира после цены водителя (если её ещё нет).
        Запрос, забронированный другой парой, закрывает запись сразу после вставки.
        """
        mirror, created = await self._repos.rider_pairings.insert_if_absent(sm.build_rider_mirror(driver))
        if created:
            await log_info(
                f"Предложение {driver.id}: цена {driver.driver_starting_price} отправлена пассажиру {mirror.rider_id}",
                type_msg=TypeMsg.INFO,
            )

        if mirror.is_open:
            trip = await self._repos.trips.get_by_id(mirror.trip_request_id)
            if trip is not None and trip.status == TripStatus.BOOKED and trip.confirmed_pairing_id != mirror.id:
                mirror = await self.update_rider_pairing(
                    mirror.id, lambda p: sm.invalidate_rider(p) if p.is_open else None,
                )
                await log_warning(f"Запрос {trip.id} уже забронирован, запись {mirror.id} закрыта")
        return mirror

    async def push_negotiation(self, rider: RiderPairing) -> DriverPairing:
        """Встречная цена пассажира -> NEGOTIATED_BY_RIDER у водителя."""
        counter_price = rider.counter_price

        def apply(driver: DriverPairing) -> DriverPairing | None:
            if driver.status == DriverPairingStatus.AWAITING_RIDER_RESPONSE and counter_price is not None:
                return sm.mirror_negotiation(driver, counter_price)
            return None

        driver = await self.update_driver_pairing(rider.mirror_id, apply)
        await self._report_skipped(driver.status, DriverPairingStatus.NEGOTIATED_BY_RIDER, driver.id)
        return driver

    async def push_rider_decline(self, rider: RiderPairing) -> DriverPairing:
        """Отказ пассажира -> DECLINED_BY_RIDER у водителя."""
        def apply(driver: DriverPairing) -> DriverPairing | None:
            if driver.status == DriverPairingStatus.AWAITING_RIDER_RESPONSE:
                return sm.mirror_rider_decline(driver)
            return None

        driver = await self.update_driver_pairing(rider.mirror_id, apply)
        await self._report_skipped(driver.status, DriverPairingStatus.DECLINED_BY_RIDER, driver.id)
        return driver

    async def push_driver_decline(self, driver: DriverPairing) -> RiderPairing | None:
        """Отказ водителя -> DECLINED_BY_DRIVER у пассажира (если запись пассажира есть)."""
        if driver.mirror_id is None:
            return None
        if await self._repos.rider_pairings.get_by_id(driver.mirror_id) is None:
            return None

        def apply(rider: RiderPairing) -> RiderPairing | None:
            if rider.status == RiderPairingStatus.AWAITING_DRIVER_RESPONSE:
                return sm.mirror_driver_decline(rider)
            return None

        rider = await self.update_rider_pairing(driver.mirror_id, apply)
        await self._report_skipped(rider.status, RiderPairingStatus.DECLINED_BY_DRIVER, rider.id)
        return rider

    @staticmethod
    async def _report_skipped(actual, expected, pairing_id: str) -> None:
        if actual != expected:
            await log_warning(
                f"Зеркало {pairing_id} уже в {actual.value}, изменение {expected.value} не применено"
            )

    # =========================================================================
    # ФИНАЛИЗАЦИЯ
    # =========================================================================

    async def finalize(
        self,
        driver: DriverPairing,
        rider: RiderPairing,
        accepted_by: AcceptedBy,
    ) -> tuple[DriverPairing, RiderPairing]:
        """
        Завершает сделку по паре.

        Args:
            driver: Запись водителя
            rider: Запись пассажира
            accepted_by: Кто подтвердил; цена берётся из accepted_price его записи

        Returns:
            (запись водителя, запись пассажира) в статусе ACCEPTED_*

        Raises:
            CapacityExhausted: мест не осталось (ничего не изменено)
            TripAlreadyBooked: запрос уже забронирован другой парой
        """
        price = rider.accepted_price if accepted_by == AcceptedBy.RIDER else driver.accepted_price
        if price is None:
            raise InvalidTransition(f"Pairing {driver.id}: accepted price is not set")

        # 1. Предварительная проверка мест
        offer = await self._repos.offers.get_by_id(driver.offered_ride_id)
        if offer is None:
            raise NotFound("OfferedRide", driver.offered_ride_id)
        if not offer.holds_seat_for(rider.id) and not offer.is_bookable:
            raise CapacityExhausted(offer.id)

        # 2. Бронь запроса пассажира
        trip_id = driver.trip_request_id
        claimed = await self._repos.trips.claim(trip_id, rider.id)
        if claimed is None:
            if await self._repos.trips.get_by_id(trip_id) is None:
                raise NotFound("TripRequest", trip_id)
            raise TripAlreadyBooked(trip_id)

        # 3. Место в машине
        try:
            offer = await self._reserve_seat(offer.id, rider.id)
        except _SeatsGone:
            await self._repos.trips.release(trip_id, rider.id)
            await log_warning(f"Места в {offer.id} закончились, бронь {trip_id} снята")
            raise CapacityExhausted(offer.id) from None

        # 4. Обе стороны -> ACCEPTED_*
        rider_final = await self.update_rider_pairing(
            rider.id, self._accept_rider(accepted_by, price),
        )
        driver_final = await self.update_driver_pairing(
            driver.id, self._accept_driver(accepted_by, price),
        )

        # 5. Остальные пары запроса
        invalidated = await self._invalidate_siblings(trip_id, driver.id, rider.id)

        await log_info(
            f"Сделка {trip_id}: предложение {offer.id}, цена {price}, "
            f"мест осталось {offer.available_seats}, отменено пар {invalidated}",
            type_msg=TypeMsg.INFO,
        )
        return driver_final, rider_final

    async def _reserve_seat(self, offer_id: str, pairing_id: str) -> OfferedRide:
        """Единственный путь уменьшения available_seats."""
        def apply(offer: OfferedRide) -> OfferedRide | None:
            if offer.holds_seat_for(pairing_id):
                return None
            if not offer.is_bookable:
                raise _SeatsGone()
            return offer.with_seat_reserved(pairing_id)

        return await self._update_offer(offer_id, apply)

    @staticmethod
    def _accept_rider(accepted_by: AcceptedBy, price: float) -> Apply:
        target = sm.ACCEPTED_RIDER_STATUS[accepted_by]

        def apply(rider: RiderPairing) -> RiderPairing | None:
            if rider.status == target and rider.accepted_price == price and not rider.can_accept:
                return None
            return sm.accept_rider_side(rider, accepted_by, price, force=True)

        return apply

    @staticmethod
    def _accept_driver(accepted_by: AcceptedBy, price: float) -> Apply:
        target = sm.ACCEPTED_DRIVER_STATUS[accepted_by]

        def apply(driver: DriverPairing) -> DriverPairing | None:
            if driver.status == target and driver.accepted_price == price and not driver.can_accept:
                return None
            return sm.accept_driver_side(driver, accepted_by, price, force=True)

        return apply

    async def _invalidate_siblings(self, trip_request_id: str, driver_id: str, rider_id: str) -> int:
        """Переводит открытые пары того же запроса в OTHER_*_ACCEPTED."""
        count = 0

        for pairing in await self._repos.driver_pairings.list_by_trip(trip_request_id):
            if pairing.id == driver_id or not pairing.is_open:
                continue
            updated = await self.update_driver_pairing(
                pairing.id, lambda p: sm.invalidate_driver(p) if p.is_open else None,
            )
            if updated.status == DriverPairingStatus.OTHER_DRIVER_ACCEPTED:
                count += 1

        for pairing in await self._repos.rider_pairings.list_by_trip(trip_request_id):
            if pairing.id == rider_id or not pairing.is_open:
                continue
            await self.update_rider_pairing(
                pairing.id, lambda p: sm.invalidate_rider(p) if p.is_open else None,
            )

        return count
