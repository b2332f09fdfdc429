# src/core/pairing/state_machine.py
"""
Машина состояний пары.

Каждый переход - чистая функция: проверяет флаги и статус и возвращает
новую копию записи. При невыполненном условии поднимается InvalidTransition,
поэтому повторная команда не может применить побочный эффект второй раз.
Запись в хранилище и зеркальные изменения делает Synchronizer.
"""

from __future__ import annotations

from src.common.constants import AcceptedBy, DriverPairingStatus, RiderPairingStatus
from src.common.errors import InvalidTransition
from src.core.pairing.models import DriverPairing, RiderPairing, rider_pairing_id_for
from src.core.rides.models import utcnow

D = DriverPairingStatus
R = RiderPairingStatus


DRIVER_TRANSITIONS: dict[DriverPairingStatus, frozenset[DriverPairingStatus]] = {
    D.AWAITING_DRIVER_PRICE: frozenset({D.AWAITING_RIDER_RESPONSE, D.DECLINED_BY_DRIVER, D.OTHER_DRIVER_ACCEPTED}),
    D.AWAITING_RIDER_RESPONSE: frozenset({
        D.ACCEPTED_BY_RIDER, D.DECLINED_BY_RIDER, D.NEGOTIATED_BY_RIDER, D.OTHER_DRIVER_ACCEPTED,
    }),
    D.NEGOTIATED_BY_RIDER: frozenset({D.ACCEPTED_BY_DRIVER, D.DECLINED_BY_DRIVER, D.OTHER_DRIVER_ACCEPTED}),
    D.ACCEPTED_BY_RIDER: frozenset(),
    D.DECLINED_BY_RIDER: frozenset(),
    D.ACCEPTED_BY_DRIVER: frozenset(),
    D.DECLINED_BY_DRIVER: frozenset(),
    D.OTHER_DRIVER_ACCEPTED: frozenset(),
}

RIDER_TRANSITIONS: dict[RiderPairingStatus, frozenset[RiderPairingStatus]] = {
    R.AWAITING_RIDER_RESPONSE: frozenset({
        R.ACCEPTED_BY_RIDER, R.DECLINED_BY_RIDER, R.AWAITING_DRIVER_RESPONSE, R.OTHER_REQUEST_ACCEPTED,
    }),
    R.AWAITING_DRIVER_RESPONSE: frozenset({R.ACCEPTED_BY_DRIVER, R.DECLINED_BY_DRIVER, R.OTHER_REQUEST_ACCEPTED}),
    R.ACCEPTED_BY_RIDER: frozenset(),
    R.DECLINED_BY_RIDER: frozenset(),
    R.ACCEPTED_BY_DRIVER: frozenset(),
    R.DECLINED_BY_DRIVER: frozenset(),
    R.OTHER_REQUEST_ACCEPTED: frozenset(),
}

ACCEPTED_DRIVER_STATUS = {
    AcceptedBy.RIDER: D.ACCEPTED_BY_RIDER,
    AcceptedBy.DRIVER: D.ACCEPTED_BY_DRIVER,
}

ACCEPTED_RIDER_STATUS = {
    AcceptedBy.RIDER: R.ACCEPTED_BY_RIDER,
    AcceptedBy.DRIVER: R.ACCEPTED_BY_DRIVER,
}


def can_transition_driver(current: DriverPairingStatus, new: DriverPairingStatus) -> bool:
    return new in DRIVER_TRANSITIONS.get(current, frozenset())


def can_transition_rider(current: RiderPairingStatus, new: RiderPairingStatus) -> bool:
    return new in RIDER_TRANSITIONS.get(current, frozenset())


def _require_driver(pairing: DriverPairing, new: DriverPairingStatus) -> None:
    if not can_transition_driver(pairing.status, new):
        raise InvalidTransition(f"Driver pairing {pairing.id}: {pairing.status.value} -> {new.value} is not allowed")


def _require_rider(pairing: RiderPairing, new: RiderPairingStatus) -> None:
    if not can_transition_rider(pairing.status, new):
        raise InvalidTransition(f"Rider pairing {pairing.id}: {pairing.status.value} -> {new.value} is not allowed")


def _require_positive(price: float, what: str) -> None:
    if price is None or price <= 0:
        raise InvalidTransition(f"{what} must be a positive number, got {price}")


# =============================================================================
# ДЕЙСТВИЯ ВОДИТЕЛЯ
# =============================================================================

def give_starting_price(pairing: DriverPairing, price: float) -> DriverPairing:
    """
    Водитель называет цену.
    Сразу проставляет mirror_id: ID записи пассажира детерминирован.
    """
    if not pairing.should_give_price:
        raise InvalidTransition(f"Driver pairing {pairing.id}: price already given")
    _require_positive(price, "Starting price")
    _require_driver(pairing, D.AWAITING_RIDER_RESPONSE)

    return pairing.model_copy(update={
        "driver_starting_price": float(price),
        "status": D.AWAITING_RIDER_RESPONSE,
        "should_give_price": False,
        "can_decline": False,
        "mirror_id": rider_pairing_id_for(pairing.id),
        "updated_at": utcnow(),
    })


def driver_accept(pairing: DriverPairing) -> DriverPairing:
    """Водитель принимает встречную цену пассажира."""
    if not pairing.can_accept or pairing.status != D.NEGOTIATED_BY_RIDER:
        raise InvalidTransition(f"Driver pairing {pairing.id}: cannot accept in {pairing.status.value}")
    return accept_driver_side(pairing, AcceptedBy.DRIVER, pairing.rider_counter_price)


def driver_decline(pairing: DriverPairing) -> DriverPairing:
    """Водитель отказывается (до цены или после встречного предложения)."""
    if not pairing.can_decline:
        raise InvalidTransition(f"Driver pairing {pairing.id}: cannot decline in {pairing.status.value}")
    _require_driver(pairing, D.DECLINED_BY_DRIVER)

    return pairing.model_copy(update={
        "status": D.DECLINED_BY_DRIVER,
        "can_accept": False,
        "can_decline": False,
        "should_give_price": False,
        "updated_at": utcnow(),
    })


# =============================================================================
# ДЕЙСТВИЯ ПАССАЖИРА
# =============================================================================

def build_rider_mirror(driver: DriverPairing) -> RiderPairing:
    """
    Создаёт запись пассажира по записи водителя, назвавшего цену.
    Если водитель уже проиграл (OTHER_DRIVER_ACCEPTED), запись сразу закрыта.
    """
    if driver.driver_starting_price is None or driver.status == D.AWAITING_DRIVER_PRICE:
        raise InvalidTransition(f"Driver pairing {driver.id}: no price given yet")

    mirror = RiderPairing(
        id=driver.mirror_id or rider_pairing_id_for(driver.id),
        trip_request_id=driver.trip_request_id,
        offered_ride_id=driver.offered_ride_id,
        rider_id=driver.rider_id,
        driver_id=driver.driver_id,
        mirror_id=driver.id,
        price_offered=driver.driver_starting_price,
    )
    if driver.status == D.OTHER_DRIVER_ACCEPTED:
        return invalidate_rider(mirror)
    return mirror


def rider_accept(pairing: RiderPairing) -> RiderPairing:
    """Пассажир принимает цену водителя."""
    if not pairing.can_accept:
        raise InvalidTransition(f"Rider pairing {pairing.id}: cannot accept in {pairing.status.value}")
    price = pairing.counter_price if pairing.counter_price is not None else pairing.price_offered
    return accept_rider_side(pairing, AcceptedBy.RIDER, price)


def rider_decline(pairing: RiderPairing) -> RiderPairing:
    """Пассажир отказывается от предложения."""
    if not pairing.can_decline:
        raise InvalidTransition(f"Rider pairing {pairing.id}: cannot decline in {pairing.status.value}")
    _require_rider(pairing, R.DECLINED_BY_RIDER)

    return pairing.model_copy(update={
        "status": R.DECLINED_BY_RIDER,
        "can_accept": False,
        "can_decline": False,
        "can_negotiate": False,
        "updated_at": utcnow(),
    })


def rider_negotiate(pairing: RiderPairing, counter_price: float) -> RiderPairing:
    """Пассажир предлагает свою цену. Возможно ровно один раз."""
    if not pairing.can_negotiate:
        raise InvalidTransition(f"Rider pairing {pairing.id}: negotiation already used or not allowed")
    _require_positive(counter_price, "Counter price")
    _require_rider(pairing, R.AWAITING_DRIVER_RESPONSE)

    return pairing.model_copy(update={
        "counter_price": float(counter_price),
        "status": R.AWAITING_DRIVER_RESPONSE,
        "can_accept": False,
        "can_decline": False,
        "can_negotiate": False,
        "updated_at": utcnow(),
    })


# =============================================================================
# ЗЕРКАЛЬНЫЕ ИЗМЕНЕНИЯ
# =============================================================================

def mirror_negotiation(driver: DriverPairing, counter_price: float) -> DriverPairing:
    """Встречная цена пассажира на стороне водителя."""
    _require_driver(driver, D.NEGOTIATED_BY_RIDER)
    return driver.model_copy(update={
        "status": D.NEGOTIATED_BY_RIDER,
        "rider_counter_price": float(counter_price),
        "can_accept": True,
        "can_decline": True,
        "updated_at": utcnow(),
    })


def mirror_rider_decline(driver: DriverPairing) -> DriverPairing:
    """Отказ пассажира на стороне водителя."""
    _require_driver(driver, D.DECLINED_BY_RIDER)
    return driver.model_copy(update={
        "status": D.DECLINED_BY_RIDER,
        "can_accept": False,
        "can_decline": False,
        "should_give_price": False,
        "updated_at": utcnow(),
    })


def mirror_driver_decline(rider: RiderPairing) -> RiderPairing:
    """Отказ водителя на стороне пассажира."""
    _require_rider(rider, R.DECLINED_BY_DRIVER)
    return rider.model_copy(update={
        "status": R.DECLINED_BY_DRIVER,
        "can_accept": False,
        "can_decline": False,
        "can_negotiate": False,
        "updated_at": utcnow(),
    })


# =============================================================================
# ПОДТВЕРЖДЕНИЕ И ИНВАЛИДАЦИЯ
# =============================================================================

def accept_driver_side(
    pairing: DriverPairing,
    accepted_by: AcceptedBy,
    price: float | None,
    force: bool = False,
) -> DriverPairing:
    """
    Терминальный ACCEPTED_* на стороне водителя, флаги сброшены.
    force=True пропускает проверку перехода: поездка уже забронирована за этой парой.
    """
    target = ACCEPTED_DRIVER_STATUS[accepted_by]
    if pairing.status != target and not force:
        _require_driver(pairing, target)
    _require_positive(price, "Accepted price")

    return pairing.model_copy(update={
        "status": target,
        "accepted_price": float(price),
        "can_accept": False,
        "can_decline": False,
        "should_give_price": False,
        "updated_at": utcnow(),
    })


def accept_rider_side(
    pairing: RiderPairing,
    accepted_by: AcceptedBy,
    price: float | None,
    force: bool = False,
) -> RiderPairing:
    """
    Терминальный ACCEPTED_* на стороне пассажира, флаги сброшены.
    force=True пропускает проверку перехода: поездка уже забронирована за этой парой.
    """
    target = ACCEPTED_RIDER_STATUS[accepted_by]
    if pairing.status != target and not force:
        _require_rider(pairing, target)
    _require_positive(price, "Accepted price")

    return pairing.model_copy(update={
        "status": target,
        "accepted_price": float(price),
        "can_accept": False,
        "can_decline": False,
        "can_negotiate": False,
        "updated_at": utcnow(),
    })


def invalidate_driver(pairing: DriverPairing) -> DriverPairing:
    """Другой водитель получил поездку."""
    _require_driver(pairing, D.OTHER_DRIVER_ACCEPTED)
    return pairing.model_copy(update={
        "status": D.OTHER_DRIVER_ACCEPTED,
        "can_accept": False,
        "can_decline": False,
        "should_give_price": False,
        "updated_at": utcnow(),
    })


def invalidate_rider(pairing: RiderPairing) -> RiderPairing:
    """Пассажир принял другое предложение."""
    _require_rider(pairing, R.OTHER_REQUEST_ACCEPTED)
    return pairing.model_copy(update={
        "status": R.OTHER_REQUEST_ACCEPTED,
        "can_accept": False,
        "can_decline": False,
        "can_negotiate": False,
        "updated_at": utcnow(),
    })
