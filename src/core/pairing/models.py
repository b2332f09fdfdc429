# src/core/pairing/models.py
"""
Модели пар «предложение водителя ↔ запрос пассажира».
Каждая пара хранится дважды: глазами водителя и глазами пассажира.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import NAMESPACE_OID, uuid4, uuid5

from pydantic import BaseModel, Field

from src.common.constants import (
    DRIVER_PAIRING_OPEN_STATUSES,
    RIDER_PAIRING_OPEN_STATUSES,
    DriverPairingStatus,
    RiderPairingStatus,
)
from src.core.rides.models import utcnow

_RIDER_PAIRING_NAMESPACE = uuid5(NAMESPACE_OID, "ride_match.rider_pairing")


def rider_pairing_id_for(driver_pairing_id: str) -> str:
    """ID зеркальной записи пассажира однозначно выводится из ID записи водителя."""
    return str(uuid5(_RIDER_PAIRING_NAMESPACE, driver_pairing_id))


class DriverPairing(BaseModel):
    """Пара глазами водителя."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID пары")
    offered_ride_id: str = Field(..., description="Предложение водителя")
    trip_request_id: str = Field(..., description="Запрос пассажира")
    driver_id: str = Field(..., description="Водитель")
    rider_id: str = Field(..., description="Пассажир")
    mirror_id: Optional[str] = Field(None, description="Запись пассажира (появляется после цены)")

    status: DriverPairingStatus = Field(DriverPairingStatus.AWAITING_DRIVER_PRICE)

    # Цены
    driver_starting_price: Optional[float] = Field(None, description="Цена водителя")
    rider_counter_price: Optional[float] = Field(None, description="Встречная цена пассажира")
    accepted_price: Optional[float] = Field(None, description="Итоговая цена")

    # Флаги возможных действий
    can_accept: bool = False
    can_decline: bool = True
    should_give_price: bool = True

    version: int = Field(0, ge=0, description="Версия записи (CAS)")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {"from_attributes": True}

    @property
    def is_open(self) -> bool:
        """Возможны ли ещё действия сторон."""
        return self.status in DRIVER_PAIRING_OPEN_STATUSES


class RiderPairing(BaseModel):
    """Пара глазами пассажира. Создаётся, когда водитель назвал цену."""

    id: str = Field(..., description="UUID пары (выводится из mirror_id)")
    trip_request_id: str = Field(..., description="Запрос пассажира")
    offered_ride_id: str = Field(..., description="Предложение водителя")
    rider_id: str = Field(..., description="Пассажир")
    driver_id: str = Field(..., description="Водитель")
    mirror_id: str = Field(..., description="Запись водителя")

    status: RiderPairingStatus = Field(RiderPairingStatus.AWAITING_RIDER_RESPONSE)

    # Цены
    price_offered: float = Field(..., gt=0, description="Цена водителя")
    counter_price: Optional[float] = Field(None, description="Встречная цена пассажира")
    accepted_price: Optional[float] = Field(None, description="Итоговая цена")

    # Флаги возможных действий
    can_accept: bool = True
    can_decline: bool = True
    can_negotiate: bool = True

    version: int = Field(0, ge=0, description="Версия записи (CAS)")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {"from_attributes": True}

    @property
    def is_open(self) -> bool:
        """Возможны ли ещё действия сторон."""
        return self.status in RIDER_PAIRING_OPEN_STATUSES
