# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class TripStatus(str, Enum):
    """Статусы запроса поездки (сторона пассажира)."""
    CREATED = "created"
    SEARCHING = "searching"
    BOOKED = "booked"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class OfferStatus(str, Enum):
    """Статусы предложенной поездки (сторона водителя)."""
    CREATED = "created"
    FULL = "full"
    CANCELLED = "cancelled"


class DriverPairingStatus(str, Enum):
    """Статусы пары глазами водителя."""
    AWAITING_DRIVER_PRICE = "AWAITING_DRIVER_PRICE"
    AWAITING_RIDER_RESPONSE = "AWAITING_RIDER_RESPONSE"
    ACCEPTED_BY_RIDER = "ACCEPTED_BY_RIDER"
    DECLINED_BY_RIDER = "DECLINED_BY_RIDER"
    NEGOTIATED_BY_RIDER = "NEGOTIATED_BY_RIDER"
    ACCEPTED_BY_DRIVER = "ACCEPTED_BY_DRIVER"
    DECLINED_BY_DRIVER = "DECLINED_BY_DRIVER"
    OTHER_DRIVER_ACCEPTED = "OTHER_DRIVER_ACCEPTED"


class RiderPairingStatus(str, Enum):
    """Статусы пары глазами пассажира."""
    AWAITING_RIDER_RESPONSE = "AWAITING_RIDER_RESPONSE"
    AWAITING_DRIVER_RESPONSE = "AWAITING_DRIVER_RESPONSE"
    ACCEPTED_BY_RIDER = "ACCEPTED_BY_RIDER"
    DECLINED_BY_RIDER = "DECLINED_BY_RIDER"
    ACCEPTED_BY_DRIVER = "ACCEPTED_BY_DRIVER"
    DECLINED_BY_DRIVER = "DECLINED_BY_DRIVER"
    OTHER_REQUEST_ACCEPTED = "OTHER_REQUEST_ACCEPTED"


# Статусы, из которых ещё возможны действия сторон
DRIVER_PAIRING_OPEN_STATUSES: frozenset[DriverPairingStatus] = frozenset({
    DriverPairingStatus.AWAITING_DRIVER_PRICE,
    DriverPairingStatus.AWAITING_RIDER_RESPONSE,
    DriverPairingStatus.NEGOTIATED_BY_RIDER,
})

RIDER_PAIRING_OPEN_STATUSES: frozenset[RiderPairingStatus] = frozenset({
    RiderPairingStatus.AWAITING_RIDER_RESPONSE,
    RiderPairingStatus.AWAITING_DRIVER_RESPONSE,
})


class EventType(str, Enum):
    """Типы входящих событий очереди."""
    NEW_RIDER_RIDE_CREATED = "newRiderRideCreated"
    NEW_DRIVER_RIDE_CREATED = "newDriverRideCreated"


class AcceptedBy(str, Enum):
    """Сторона, подтвердившая сделку."""
    RIDER = "rider"
    DRIVER = "driver"


class RequestType(str, Enum):
    """Фильтр списка запросов пользователя."""
    DRIVER = "driver"
    RIDER = "rider"
