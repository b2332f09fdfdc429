# src/core/pairing/service.py
"""
Сервис переговоров о цене.
Команды водителя и пассажира по ID пары и ID вызывающего пользователя.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from src.common.constants import AcceptedBy, DriverPairingStatus, RequestType, RiderPairingStatus, TypeMsg
from src.common.errors import InvalidTransition, NotFound
from src.common.logger import log_info
from src.core.pairing import state_machine as sm
from src.core.pairing.models import DriverPairing, RiderPairing
from src.core.pairing.synchronizer import PairingSynchronizer
from src.core.rides.models import OfferedRide, TripRequest

if TYPE_CHECKING:
    from src.infra.storage import Repositories


class NegotiationService:
    """
    Сервис переговоров.

    Пара, принадлежащая другому пользователю, считается не найденной.
    Точные повторы подтверждения и цены не меняют запись, но повторно
    прогоняют идемпотентную синхронизацию.
    """

    def __init__(self, repositories: Repositories, synchronizer: PairingSynchronizer | None = None) -> None:
        """
        Args:
            repositories: Репозитории хранилища
            synchronizer: Синхронизатор пар (создаётся по репозиториям если None)
        """
        self._repos = repositories
        self._sync = synchronizer or PairingSynchronizer(repositories)

    # =========================================================================
    # ЗАГРУЗКА С ПРОВЕРКОЙ ВЛАДЕЛЬЦА
    # =========================================================================

    async def _driver_pairing(self, pairing_id: str, driver_id: str) -> DriverPairing:
        pairing = await self._repos.driver_pairings.get_by_id(pairing_id)
        if pairing is None or pairing.driver_id != driver_id:
            raise NotFound("DriverPairing", pairing_id)
        return pairing

    async def _rider_pairing(self, pairing_id: str, rider_id: str) -> RiderPairing:
        pairing = await self._repos.rider_pairings.get_by_id(pairing_id)
        if pairing is None or pairing.rider_id != rider_id:
            raise NotFound("RiderPairing", pairing_id)
        return pairing

    async def _mirror_of_rider(self, rider: RiderPairing) -> DriverPairing:
        driver = await self._repos.driver_pairings.get_by_id(rider.mirror_id)
        if driver is None:
            raise NotFound("DriverPairing", rider.mirror_id)
        return driver

    # =========================================================================
    # ВОДИТЕЛЬ
    # =========================================================================

    async def give_starting_price(self, pairing_id: str, driver_id: str, price: float) -> DriverPairing:
        """Водитель называет цену; создаётся запись пассажира."""
        await self._driver_pairing(pairing_id, driver_id)

        def apply(pairing: DriverPairing) -> DriverPairing | None:
            if (
                not pairing.should_give_price
                and pairing.driver_starting_price == float(price)
                and pairing.mirror_id is not None
            ):
                return None
            return sm.give_starting_price(pairing, price)

        updated = await self._sync.update_driver_pairing(pairing_id, apply)
        await self._sync.ensure_rider_mirror(updated)

        await log_info(f"Водитель {driver_id} назвал цену {price} по паре {pairing_id}", type_msg=TypeMsg.INFO)
        return updated

    async def driver_accept(self, pairing_id: str, driver_id: str) -> DriverPairing:
        """Водитель принимает встречную цену; сделка финализируется."""
        driver = await self._driver_pairing(pairing_id, driver_id)

        if driver.status == DriverPairingStatus.ACCEPTED_BY_DRIVER:
            candidate = driver
        else:
            candidate = sm.driver_accept(driver)

        if candidate.mirror_id is None:
            raise InvalidTransition(f"Driver pairing {pairing_id}: rider has not responded yet")
        rider = await self._repos.rider_pairings.get_by_id(candidate.mirror_id)
        if rider is None:
            raise NotFound("RiderPairing", candidate.mirror_id)

        driver_final, _ = await self._sync.finalize(candidate, rider, AcceptedBy.DRIVER)
        return driver_final

    async def driver_decline(self, pairing_id: str, driver_id: str) -> DriverPairing:
        """Водитель отказывается от пары."""
        driver = await self._driver_pairing(pairing_id, driver_id)

        if driver.status == DriverPairingStatus.DECLINED_BY_DRIVER:
            await self._sync.push_driver_decline(driver)
            raise InvalidTransition(f"Driver pairing {pairing_id}: already declined")

        updated = await self._sync.update_driver_pairing(pairing_id, sm.driver_decline)
        await self._sync.push_driver_decline(updated)

        await log_info(f"Водитель {driver_id} отказался от пары {pairing_id}", type_msg=TypeMsg.INFO)
        return updated

    # =========================================================================
    # ПАССАЖИР
    # =========================================================================

    async def rider_accept(self, pairing_id: str, rider_id: str) -> RiderPairing:
        """Пассажир принимает цену водителя; сделка финализируется."""
        rider = await self._rider_pairing(pairing_id, rider_id)

        if rider.status == RiderPairingStatus.ACCEPTED_BY_RIDER:
            candidate = rider
        else:
            candidate = sm.rider_accept(rider)

        driver = await self._mirror_of_rider(rider)
        _, rider_final = await self._sync.finalize(driver, candidate, AcceptedBy.RIDER)
        return rider_final

    async def rider_decline(self, pairing_id: str, rider_id: str) -> RiderPairing:
        """Пассажир отказывается от предложения водителя."""
        rider = await self._rider_pairing(pairing_id, rider_id)

        if rider.status == RiderPairingStatus.DECLINED_BY_RIDER:
            await self._sync.push_rider_decline(rider)
            raise InvalidTransition(f"Rider pairing {pairing_id}: already declined")

        updated = await self._sync.update_rider_pairing(pairing_id, sm.rider_decline)
        await self._sync.push_rider_decline(updated)

        await log_info(f"Пассажир {rider_id} отказался от пары {pairing_id}", type_msg=TypeMsg.INFO)
        return updated

    async def rider_negotiate(self, pairing_id: str, rider_id: str, counter_price: float) -> RiderPairing:
        """Пассажир предлагает свою цену (один раз)."""
        rider = await self._rider_pairing(pairing_id, rider_id)

        if rider.status == RiderPairingStatus.AWAITING_DRIVER_RESPONSE and rider.counter_price is not None:
            await self._sync.push_negotiation(rider)
            raise InvalidTransition(f"Rider pairing {pairing_id}: negotiation already used")

        updated = await self._sync.update_rider_pairing(
            pairing_id, lambda p: sm.rider_negotiate(p, counter_price),
        )
        await self._sync.push_negotiation(updated)

        await log_info(
            f"Пассажир {rider_id} предложил цену {counter_price} по паре {pairing_id}",
            type_msg=TypeMsg.INFO,
        )
        return updated

    # =========================================================================
    # СПИСКИ
    # =========================================================================

    async def list_offered_rides(self, driver_id: str) -> list[OfferedRide]:
        """Поездки водителя, новые первыми."""
        return await self._repos.offers.list_by_driver(driver_id)

    async def list_trip_requests(self, rider_id: str) -> list[TripRequest]:
        """Запросы пассажира, новые первыми."""
        return await self._repos.trips.list_by_rider(rider_id)

    async def list_requests(self, user_id: str, request_type: RequestType | None = None) -> dict[str, Any]:
        """
        Пары пользователя в обеих ролях.

        Args:
            user_id: ID пользователя
            request_type: driver / rider / None (обе роли)

        Returns:
            {"requests_as_driver": [...], "requests_as_rider": [...]}
        """
        as_driver: list[DriverPairing] = []
        as_rider: list[RiderPairing] = []

        if request_type in (None, RequestType.DRIVER):
            as_driver = await self._repos.driver_pairings.list_by_driver(user_id)
        if request_type in (None, RequestType.RIDER):
            as_rider = await self._repos.rider_pairings.list_by_rider(user_id)

        return {"requests_as_driver": as_driver, "requests_as_rider": as_rider}
