#!/usr/bin/env python3
# main.py
"""
Главная точка входа Ride Match.
Запускает воркер приёма событий, HTTP API переговоров или оба сразу.
"""

from __future__ import annotations

import asyncio
import signal
import sys

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg
from src.infra.event_bus import init_event_queue, close_event_queue
from src.infra.storage import init_storage, close_storage

VALID_MODES = ("worker", "api", "all")

# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        """Обработчик сигналов SIGINT и SIGTERM."""
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def init_infrastructure(with_queue: bool) -> None:
    """Инициализирует хранилище и (для воркера) RabbitMQ."""
    await log_info("Инициализация инфраструктуры...", type_msg=TypeMsg.INFO)

    await init_storage()
    await log_info(f"Хранилище подключено ({settings.database.DB_BACKEND})", type_msg=TypeMsg.DEBUG)

    if with_queue:
        await init_event_queue()
        await log_info("RabbitMQ подключён", type_msg=TypeMsg.DEBUG)

    await log_info("Инфраструктура инициализирована", type_msg=TypeMsg.INFO)


async def close_infrastructure() -> None:
    """Закрывает все подключения."""
    await log_info("Закрытие подключений...", type_msg=TypeMsg.INFO)

    await close_event_queue()
    await close_storage()

    await log_info("Подключения закрыты", type_msg=TypeMsg.INFO)


async def run_worker() -> None:
    """Запускает IntakeWorker (инфраструктура уже инициализирована)."""
    from src.worker.runner import run_workers

    await run_workers(init_infra=False)


async def run_api() -> None:
    """Запускает HTTP API переговоров."""
    import uvicorn

    from src.services.negotiation.app import create_app

    await log_info(
        f"Запуск Negotiation API на {settings.deployment.API_HOST}:{settings.deployment.API_PORT}...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        create_app(use_lifespan=False),
        host=settings.deployment.API_HOST,
        port=settings.deployment.API_PORT,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Negotiation API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


def resolve_mode(mode: str | None) -> str:
    """Режим из аргумента, затем COMPONENT_MODE, иначе all."""
    if mode:
        return mode
    component_mode = settings.system.COMPONENT_MODE
    if component_mode in VALID_MODES:
        return component_mode
    return "all"


async def main(mode: str | None = None) -> None:
    """
    Главная функция запуска.

    Args:
        mode: worker, api или all. Если None, берётся из COMPONENT_MODE.
    """
    global _running_tasks

    setup_logging()
    setup_signal_handlers()

    mode = resolve_mode(mode)
    await log_info(
        f"Ride Match v{settings.system.VERSION} ({settings.system.ENVIRONMENT}) - запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    try:
        await init_infrastructure(with_queue=mode in ("worker", "all"))

        match mode:
            case "worker":
                _running_tasks = [asyncio.create_task(run_worker())]
            case "api":
                _running_tasks = [asyncio.create_task(run_api())]
            case "all":
                _running_tasks = [
                    asyncio.create_task(run_worker()),
                    asyncio.create_task(run_api()),
                ]
            case _:
                await log_error(f"Неизвестный режим: {mode}")
                return

        await asyncio.gather(*_running_tasks, return_exceptions=True)

    except KeyboardInterrupt:
        await log_info("Получен сигнал остановки (Ctrl+C)", type_msg=TypeMsg.INFO)
    except asyncio.CancelledError:
        await log_info("Задача отменена, выполняется graceful shutdown", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}")
        raise
    finally:
        if _running_tasks:
            await log_info("Отмена оставшихся задач...", type_msg=TypeMsg.DEBUG)
            for task in _running_tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*_running_tasks, return_exceptions=True)
            _running_tasks.clear()

        await log_info("Завершение работы, закрытие подключений...", type_msg=TypeMsg.INFO)
        try:
            await close_infrastructure()
        except Exception as e:
            await log_error(f"Ошибка при закрытии подключений: {e}")
        await log_info("Приложение остановлено", type_msg=TypeMsg.INFO)


def print_usage() -> None:
    """Выводит справку по использованию."""
    print("""
Ride Match - подбор попутчиков и переговоры о цене

Использование:
    python main.py [mode]

Режимы:
    worker   - IntakeWorker (очередь RabbitMQ -> подбор кандидатов)
    api      - Negotiation API (FastAPI)
    all      - оба компонента в одном процессе

Без аргумента режим берётся из COMPONENT_MODE (по умолчанию all).
    """)


if __name__ == "__main__":
    mode = None

    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        elif arg in VALID_MODES:
            mode = arg
        else:
            print(f"Неизвестный режим: {arg}")
            print_usage()
            sys.exit(1)

    try:
        asyncio.run(main(mode))
    except KeyboardInterrupt:
        pass
