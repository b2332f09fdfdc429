# src/services/negotiation/app.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.common.constants import TypeMsg
from src.common.errors import RideMatchError
from src.common.logger import log_info, setup_logging
from src.config import settings
from src.infra.storage import close_storage, init_storage, storage_health
from src.services.negotiation.routes import router


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_storage()
    await log_info("Negotiation API запущен", type_msg=TypeMsg.INFO)
    yield
    await close_storage()


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Собирает приложение. Без lifespan - когда хранилище уже подключено (main.py all, тесты)."""
    app = FastAPI(
        title="Ride Match Negotiation",
        version=settings.system.VERSION,
        lifespan=lifespan if use_lifespan else None,
    )

    @app.exception_handler(RideMatchError)
    async def ride_match_error_handler(request: Request, exc: RideMatchError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.http_status,
            content={"code": exc.code, "message": exc.message},
        )

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        storage_ok = await storage_health()
        return JSONResponse(
            status_code=200 if storage_ok else 503,
            content={"status": "ok" if storage_ok else "degraded", "service": "negotiation"},
        )

    return app


app = create_app()
