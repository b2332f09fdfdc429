# src/common/errors.py
"""
Ошибки доменного ядра.

Коды:
  400x: нарушение правил переходов
  404x: запись не найдена
  409x: конфликт (поездка уже забронирована, нет мест)
  503x: недоступна зависимость (БД, очередь)
"""


class RideMatchError(Exception):
    """Базовая ошибка приложения."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


class NotFound(RideMatchError):
    """Запись не найдена (или принадлежит другому пользователю)."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(4040, f"{entity} not found: {entity_id}", 404)


class InvalidTransition(RideMatchError):
    """Не выполнено условие перехода (флаг или статус)."""

    def __init__(self, message: str, code: int = 4000, http_status: int = 400) -> None:
        super().__init__(code, message, http_status)


class TripAlreadyBooked(InvalidTransition):
    """Поездку уже подтвердила другая пара: повторное принятие ничего не меняет."""

    def __init__(self, trip_request_id: str) -> None:
        self.trip_request_id = trip_request_id
        super().__init__(f"Trip request already booked: {trip_request_id}", 4090, 409)


class CapacityExhausted(RideMatchError):
    """Свободные места закончились между подбором и подтверждением."""

    def __init__(self, offered_ride_id: str) -> None:
        self.offered_ride_id = offered_ride_id
        super().__init__(4091, f"No seats left on offered ride: {offered_ride_id}", 409)


class TransientDependency(RideMatchError):
    """Временная недоступность хранилища или очереди. Можно повторить."""

    def __init__(self, message: str) -> None:
        super().__init__(5030, message, 503)
