# src/services/negotiation/routes.py
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from src.common.constants import RequestType
from src.core.pairing.models import DriverPairing, RiderPairing
from src.core.pairing.service import NegotiationService
from src.core.rides.models import OfferedRide, TripRequest
from src.services.negotiation.dependencies import get_current_user_id, get_negotiation_service

router = APIRouter(prefix="/rides", tags=["Rides"])

UserId = Annotated[str, Depends(get_current_user_id)]
Service = Annotated[NegotiationService, Depends(get_negotiation_service)]


class GivePriceRequest(BaseModel):
    driver_starting_price: float = Field(..., gt=0)


class NegotiateRequest(BaseModel):
    counter_price: float = Field(..., gt=0)


# === RIDES ===

@router.get("/driver", response_model=list[OfferedRide])
async def get_driver_rides(user_id: UserId, service: Service):
    return await service.list_offered_rides(user_id)


@router.get("/rider", response_model=list[TripRequest])
async def get_rider_rides(user_id: UserId, service: Service):
    return await service.list_trip_requests(user_id)


@router.get("/requests")
async def get_requests(
    user_id: UserId,
    service: Service,
    request_type: Annotated[Optional[RequestType], Query(alias="requestType")] = None,
) -> dict[str, Any]:
    return await service.list_requests(user_id, request_type)


# === DRIVER ===

@router.patch("/driver/give-price/{pairing_id}", response_model=DriverPairing)
async def driver_give_price(pairing_id: str, request: GivePriceRequest, user_id: UserId, service: Service):
    return await service.give_starting_price(pairing_id, user_id, request.driver_starting_price)


@router.patch("/driver/accept/{pairing_id}", response_model=DriverPairing)
async def driver_accept(pairing_id: str, user_id: UserId, service: Service):
    return await service.driver_accept(pairing_id, user_id)


@router.patch("/driver/decline/{pairing_id}", response_model=DriverPairing)
async def driver_decline(pairing_id: str, user_id: UserId, service: Service):
    return await service.driver_decline(pairing_id, user_id)


# === RIDER ===

@router.patch("/rider/accept/{pairing_id}", response_model=RiderPairing)
async def rider_accept(pairing_id: str, user_id: UserId, service: Service):
    return await service.rider_accept(pairing_id, user_id)


@router.patch("/rider/decline/{pairing_id}", response_model=RiderPairing)
async def rider_decline(pairing_id: str, user_id: UserId, service: Service):
    return await service.rider_decline(pairing_id, user_id)


@router.patch("/rider/negotiate/{pairing_id}", response_model=RiderPairing)
async def rider_negotiate(pairing_id: str, request: NegotiateRequest, user_id: UserId, service: Service):
    return await service.rider_negotiate(pairing_id, user_id, request.counter_price)
