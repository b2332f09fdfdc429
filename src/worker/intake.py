# src/worker/intake.py
"""
Воркер приёма событий о новых поездках.
Сохраняет запрос пассажира или предложение водителя и запускает подбор.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from src.common.constants import EventType, TripStatus, TypeMsg
from src.common.logger import log_info, log_warning
from src.core.matching.service import MatchingService
from src.core.rides.models import OfferedRide, TripRequest
from src.infra.event_bus import EventQueue, ReceivedMessage
from src.infra.storage import Repositories, get_repositories
from src.worker.base import BaseWorker

# Ключ полезной нагрузки для каждого типа события
PAYLOAD_KEYS = {
    EventType.NEW_RIDER_RIDE_CREATED: "riderRide",
    EventType.NEW_DRIVER_RIDE_CREATED: "driverRide",
}


class MalformedMessage(ValueError):
    """Сообщение не является событием."""


def parse_envelope(body: bytes | str) -> dict[str, Any]:
    """
    Разбирает тело сообщения.
    Обёртка SNS {"Message": "<json>"} снимается.
    """
    try:
        parsed = json.loads(body)
        if isinstance(parsed, dict) and isinstance(parsed.get("Message"), str):
            parsed = json.loads(parsed["Message"])
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedMessage(f"Invalid JSON: {e}") from e

    if not isinstance(parsed, dict) or not parsed.get("EVENT_TYPE"):
        raise MalformedMessage("Envelope has no EVENT_TYPE")
    return parsed


def require_event_id(payload: dict[str, Any], kind: str) -> None:
    """Событие без id при повторной доставке создало бы вторую запись."""
    if not any(payload.get(key) for key in ("id", "_id")):
        raise MalformedMessage(f"{kind} has no id")


def build_envelope(event_type: EventType, payload: dict[str, Any]) -> dict[str, Any]:
    """Собирает событие в формате очереди."""
    return {"EVENT_TYPE": event_type.value, PAYLOAD_KEYS[event_type]: payload}


class IntakeWorker(BaseWorker):
    """
    Воркер приёма событий.
    newRiderRideCreated -> сохранить запрос и подобрать кандидатов;
    если кандидатов нет, событие публикуется повторно.
    newDriverRideCreated -> сохранить предложение.
    """

    def __init__(
        self,
        event_queue: Optional[EventQueue] = None,
        repositories: Optional[Repositories] = None,
        matching_service: Optional[MatchingService] = None,
        requeue_delay: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(event_queue=event_queue, **kwargs)
        from src.config import settings

        self.repositories = repositories or get_repositories()
        self.matching = matching_service or MatchingService(self.repositories)
        self.requeue_delay = settings.intake.REQUEUE_DELAY_SECONDS if requeue_delay is None else requeue_delay

    @property
    def name(self) -> str:
        return "IntakeWorker"

    async def handle_message(self, message: ReceivedMessage) -> None:
        """Разбирает событие и передаёт его обработчику по типу."""
        envelope = parse_envelope(message.body)
        event_type = envelope["EVENT_TYPE"]

        match event_type:
            case EventType.NEW_RIDER_RIDE_CREATED.value:
                await self.handle_trip_created(self._payload(envelope, EventType.NEW_RIDER_RIDE_CREATED))
            case EventType.NEW_DRIVER_RIDE_CREATED.value:
                await self.handle_offer_created(self._payload(envelope, EventType.NEW_DRIVER_RIDE_CREATED))
            case _:
                await log_warning(f"Необработанный тип события: {event_type}")

    @staticmethod
    def _payload(envelope: dict[str, Any], event_type: EventType) -> dict[str, Any]:
        payload = envelope.get(PAYLOAD_KEYS[event_type])
        if not isinstance(payload, dict):
            raise MalformedMessage(f"{event_type.value} without {PAYLOAD_KEYS[event_type]}")
        return payload

    async def handle_offer_created(self, payload: dict[str, Any]) -> OfferedRide:
        """Сохраняет предложение водителя (повтор события ничего не меняет)."""
        require_event_id(payload, "driverRide")
        offer = await self.repositories.offers.insert_if_absent(OfferedRide.model_validate(payload))
        await log_info(
            f"Предложение {offer.id} водителя {offer.driver_id}: мест {offer.available_seats}",
            type_msg=TypeMsg.INFO,
        )
        return offer

    async def handle_trip_created(self, payload: dict[str, Any]) -> TripRequest:
        """
        Сохраняет запрос пассажира и подбирает кандидатов.
        Без кандидатов запрос остаётся created, а событие уходит в очередь ещё раз.
        """
        require_event_id(payload, "riderRide")
        trip = await self.repositories.trips.insert_if_absent(TripRequest.model_validate(payload))
        pairings = await self.matching.match_trip(trip)

        if not pairings and trip.status == TripStatus.CREATED:
            if self.requeue_delay > 0:
                await asyncio.sleep(self.requeue_delay)
            await self.event_queue.publish(
                build_envelope(EventType.NEW_RIDER_RIDE_CREATED, trip.model_dump(mode="json"))
            )
            await log_info(f"Запрос {trip.id} возвращён в очередь: водителей нет", type_msg=TypeMsg.INFO)

        return trip
