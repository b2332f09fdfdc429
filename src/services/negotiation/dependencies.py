# src/services/negotiation/dependencies.py
from typing import Annotated

from fastapi import Header, HTTPException

from src.core.pairing.service import NegotiationService
from src.infra.storage import get_repositories


def get_negotiation_service() -> NegotiationService:
    return NegotiationService(get_repositories())


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str:
    """
    ID вызывающего пользователя.
    Аутентификация выполняется снаружи, сюда приходит уже проверенный ID.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id
