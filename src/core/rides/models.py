# src/core/rides/models.py
"""
Модели поездок: запрос пассажира и предложение водителя.
Поля принимают как snake_case, так и имена из событий (riderId, from, leaving, ...).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from src.common.constants import OfferStatus, TripStatus
from src.core.geo import GeoPoint


def utcnow() -> datetime:
    """Текущее время в UTC (aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Наивное время считается UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RouteStop(BaseModel):
    """Промежуточная остановка маршрута водителя."""

    point: GeoPoint = Field(..., validation_alias=AliasChoices("point", "coordinates", "location"))
    arrival_time: datetime = Field(..., validation_alias=AliasChoices("arrival_time", "arrivalTime"))

    @field_validator("arrival_time")
    @classmethod
    def normalize_time(cls, v: datetime) -> datetime:
        return as_utc(v)


class TripRequest(BaseModel):
    """Запрос поездки пассажира."""

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        validation_alias=AliasChoices("id", "_id"),
        description="UUID запроса",
    )
    rider_id: str = Field(..., validation_alias=AliasChoices("rider_id", "riderId", "userId"))

    origin: GeoPoint = Field(..., validation_alias=AliasChoices("origin", "from"))
    destination: GeoPoint = Field(..., validation_alias=AliasChoices("destination", "to"))
    departure_time: datetime = Field(..., validation_alias=AliasChoices("departure_time", "departing"))

    seats: int = Field(1, ge=1, description="Сколько мест нужно")
    status: TripStatus = Field(TripStatus.CREATED, description="Статус запроса")
    confirmed_pairing_id: Optional[str] = Field(None, description="RiderPairing, выигравший сделку")

    version: int = Field(0, ge=0, description="Версия записи (CAS)")
    created_at: datetime = Field(default_factory=utcnow, validation_alias=AliasChoices("created_at", "createdAt"))
    updated_at: datetime = Field(default_factory=utcnow, validation_alias=AliasChoices("updated_at", "updatedAt"))

    model_config = {"from_attributes": True}

    @field_validator("departure_time", "created_at", "updated_at")
    @classmethod
    def normalize_time(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def is_open(self) -> bool:
        """Можно ли ещё подтвердить сделку по этому запросу."""
        return self.status in (TripStatus.CREATED, TripStatus.SEARCHING)


class OfferedRide(BaseModel):
    """Предложенная водителем поездка."""

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        validation_alias=AliasChoices("id", "_id"),
        description="UUID предложения",
    )
    driver_id: str = Field(..., validation_alias=AliasChoices("driver_id", "driverId", "userId"))

    origin: GeoPoint
    destination: GeoPoint
    stops: list[RouteStop] = Field(default_factory=list, description="Остановки по порядку")
    departure_time: datetime = Field(..., validation_alias=AliasChoices("departure_time", "leaving"))

    total_seats: int = Field(0, ge=0, validation_alias=AliasChoices("total_seats", "totalSeats"))
    available_seats: int = Field(..., ge=0, validation_alias=AliasChoices("available_seats", "availableSeats"))
    status: OfferStatus = Field(OfferStatus.CREATED, description="Статус предложения")
    booked_pairing_ids: list[str] = Field(default_factory=list, description="Пары, уже занявшие место")

    version: int = Field(0, ge=0, description="Версия записи (CAS)")
    created_at: datetime = Field(default_factory=utcnow, validation_alias=AliasChoices("created_at", "createdAt"))
    updated_at: datetime = Field(default_factory=utcnow, validation_alias=AliasChoices("updated_at", "updatedAt"))

    model_config = {"from_attributes": True}

    @field_validator("departure_time", "created_at", "updated_at")
    @classmethod
    def normalize_time(cls, v: datetime) -> datetime:
        return as_utc(v)

    @model_validator(mode="after")
    def default_total_seats(self) -> "OfferedRide":
        if self.total_seats < self.available_seats:
            self.total_seats = self.available_seats
        return self

    @property
    def is_bookable(self) -> bool:
        """Принимает ли предложение новых пассажиров."""
        return self.status == OfferStatus.CREATED and self.available_seats >= 1

    def holds_seat_for(self, pairing_id: str) -> bool:
        """Заняла ли эта пара место ранее."""
        return pairing_id in self.booked_pairing_ids

    def with_seat_reserved(self, pairing_id: str) -> "OfferedRide":
        """
        Возвращает копию с занятым местом.
        Статус становится full, когда мест не осталось.
        """
        seats_left = self.available_seats - 1
        return self.model_copy(update={
            "available_seats": seats_left,
            "status": OfferStatus.FULL if seats_left <= 0 else OfferStatus.CREATED,
            "booked_pairing_ids": [*self.booked_pairing_ids, pairing_id],
            "updated_at": utcnow(),
        })
