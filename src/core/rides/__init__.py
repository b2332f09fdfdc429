# src/core/rides/__init__.py
"""
Модуль поездок.
Запросы пассажиров и предложения водителей.
"""

from src.core.rides.models import OfferedRide, RouteStop, TripRequest
from src.core.rides.repository import (
    OfferedRideRepository,
    PgOfferedRideRepository,
    PgTripRequestRepository,
    TripRequestRepository,
)

__all__ = [
    "OfferedRide",
    "RouteStop",
    "TripRequest",
    "TripRequestRepository",
    "OfferedRideRepository",
    "PgTripRequestRepository",
    "PgOfferedRideRepository",
]
