# tests/common/test_errors.py
"""
Тесты для доменных ошибок (src/common/errors.py).
"""

import pytest

from src.common.errors import (
    CapacityExhausted,
    InvalidTransition,
    NotFound,
    RideMatchError,
    TransientDependency,
    TripAlreadyBooked,
)


class TestErrorKinds:
    """Код, сообщение и HTTP-статус каждой ошибки."""

    @pytest.mark.parametrize(
        "error, http_status",
        [
            (NotFound("DriverPairing", "p-1"), 404),
            (InvalidTransition("cannot accept"), 400),
            (TripAlreadyBooked("t-1"), 409),
            (CapacityExhausted("o-1"), 409),
            (TransientDependency("db down"), 503),
        ],
    )
    def test_http_status(self, error: RideMatchError, http_status: int) -> None:
        assert isinstance(error, RideMatchError)
        assert error.http_status == http_status

    def test_not_found_message(self) -> None:
        error = NotFound("RiderPairing", "abc")

        assert error.entity == "RiderPairing"
        assert error.entity_id == "abc"
        assert str(error) == "RiderPairing not found: abc"

    def test_trip_already_booked_is_invalid_transition(self) -> None:
        """Бронь другой парой - частный случай недопустимого перехода."""
        error = TripAlreadyBooked("t-1")

        assert isinstance(error, InvalidTransition)
        assert error.trip_request_id == "t-1"
        assert error.code == 4090

    def test_capacity_exhausted_is_not_invalid_transition(self) -> None:
        assert not isinstance(CapacityExhausted("o-1"), InvalidTransition)

    def test_transient_is_catchable_as_base(self) -> None:
        with pytest.raises(RideMatchError) as exc_info:
            raise TransientDependency("RabbitMQ unavailable")

        assert exc_info.value.code == 5030
